"""LLM service implementations.

Each service consumes the structured :class:`PromptTemplate` objects defined in
``app.infrastructure.llm.prompts`` so that prompt engineering is centralised,
reusable, and version-controlled.

Providers never raise on transport or API errors: they log a warning and
return an empty string, and the explanation service answers with its
templated text instead.
"""

import logging

import httpx
import openai

from app.domain.repositories import ILLMService
from app.infrastructure.llm.prompts import (
    COMPARE_BOOKS_PROMPT,
    EXPLAIN_RECOMMENDATION_PROMPT,
    compare_variables,
    explain_variables,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Mock (development / testing)
# ---------------------------------------------------------------------------
class MockLLMService(ILLMService):
    """Returns deterministic results - useful for tests and offline dev."""

    async def explain_recommendation(self, context: dict) -> str:
        prompt = EXPLAIN_RECOMMENDATION_PROMPT.render_flat(**explain_variables(context))
        logger.debug("MockLLM explain prompt (%d chars)", len(prompt))

        book = context["book"]
        reasons = context.get("reasons") or ["it matches your reading profile"]
        text = f'We recommend "{book.title}" because: ' + "; ".join(reasons) + "."
        suggestions = context.get("candidates", [])[:2]
        if suggestions:
            text += "\nTry also: " + ", ".join(
                f'"{c.title}" [ID:{c.id}]' for c in suggestions
            )
        return text

    async def compare_books(self, context: dict) -> str:
        prompt = COMPARE_BOOKS_PROMPT.render_flat(**compare_variables(context))
        logger.debug("MockLLM compare prompt (%d chars)", len(prompt))

        entries = sorted(context["books"], key=lambda e: -e["score"])
        lines = [
            f'"{e["book"].title}" [ID:{e["book"].id}]: {round(e["score"] * 100)}% match'
            for e in entries
        ]
        best = entries[0]["book"]
        return "\n".join(lines) + f'\nBest fit: "{best.title}" [ID:{best.id}]'


# ---------------------------------------------------------------------------
# Llama 3 (local / Ollama)
# ---------------------------------------------------------------------------
class LlamaLLMService(ILLMService):
    """Local LLM service backed by `Ollama <https://ollama.com>`_.

    Communicates with the Ollama REST API over HTTP using **httpx**.

    Constructor args:
        base_url:  Ollama server URL (default ``http://localhost:11434``).
        model:     Model tag pulled into Ollama (default ``llama3``).
        timeout:   Per-request timeout in seconds (default 60).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3",
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    async def _chat(self, messages: list[dict[str, str]]) -> str:
        """Call ``POST /api/chat`` (non-streaming) and return the response text."""
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": 0.4},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/chat", json=payload)
                resp.raise_for_status()
                data = resp.json()
                return (data.get("message", {}).get("content") or "").strip()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Ollama /api/chat failed (%s); using templated text", exc)
            return ""

    async def explain_recommendation(self, context: dict) -> str:
        messages = EXPLAIN_RECOMMENDATION_PROMPT.render(**explain_variables(context))
        logger.info("LlamaLLM: requesting explanation from %s (model=%s)", self.base_url, self.model)
        return await self._chat(messages)

    async def compare_books(self, context: dict) -> str:
        messages = COMPARE_BOOKS_PROMPT.render(**compare_variables(context))
        logger.info("LlamaLLM: requesting comparison from %s (model=%s)", self.base_url, self.model)
        return await self._chat(messages)


# ---------------------------------------------------------------------------
# OpenAI (remote API)
# ---------------------------------------------------------------------------
class OpenAILLMService(ILLMService):
    """OpenAI-backed LLM provider.

    Requires ``LLM_API_KEY`` in env.
    """

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    async def _chat(self, messages: list[dict[str, str]], max_tokens: int) -> str:
        try:
            client = openai.AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                temperature=0.4,
                max_tokens=max_tokens,
            )
            return (response.choices[0].message.content or "").strip()
        except openai.OpenAIError as exc:
            logger.warning("OpenAI call failed (%s); using templated text", exc)
            return ""

    async def explain_recommendation(self, context: dict) -> str:
        messages = EXPLAIN_RECOMMENDATION_PROMPT.render(**explain_variables(context))
        return await self._chat(messages, max_tokens=500)

    async def compare_books(self, context: dict) -> str:
        messages = COMPARE_BOOKS_PROMPT.render(**compare_variables(context))
        return await self._chat(messages, max_tokens=600)
