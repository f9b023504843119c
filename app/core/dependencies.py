"""Dependency injection container."""

from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.redis_client import RedisPreferenceCache, get_redis
from app.domain.repositories import (
    ICatalogRepository,
    ILibraryRepository,
    ILLMService,
    IPreferenceCache,
    IPurchaseRepository,
)
from app.domain.services import IExplanationService, IPreferenceService, IRecommendationService
from app.infrastructure.database.connection import get_db
from app.infrastructure.database.repository import (
    CatalogRepository,
    LibraryRepository,
    PurchaseRepository,
)
from app.infrastructure.llm.services import LlamaLLMService, MockLLMService, OpenAILLMService
from app.services.explanation_service import ExplanationService
from app.services.preference_service import PreferenceConfig, PreferenceService
from app.services.recommendation import RecommendationConfig, RecommendationService

# Built once at import so a bad weight configuration fails at startup
preference_config = PreferenceConfig.from_settings(settings)
recommendation_config = RecommendationConfig.from_settings(settings)


# ---------------------------------------------------------------------------
# Infrastructure providers
# ---------------------------------------------------------------------------
def get_llm_service() -> ILLMService:
    """Return the configured LLM provider."""
    if settings.llm_provider == "mock":
        return MockLLMService()
    elif settings.llm_provider == "llama":
        return LlamaLLMService(
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            timeout=settings.llm_timeout_seconds,
        )
    elif settings.llm_provider == "openai":
        return OpenAILLMService(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            timeout=settings.llm_timeout_seconds,
        )
    raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")


def get_preference_cache() -> Optional[IPreferenceCache]:
    """Return the snapshot cache, or ``None`` when the TTL disables it."""
    if settings.preferences_cache_ttl_seconds <= 0:
        return None
    return RedisPreferenceCache(get_redis(), settings.preferences_cache_ttl_seconds)


# ---------------------------------------------------------------------------
# Repository providers
# ---------------------------------------------------------------------------
async def get_catalog_repository(session: AsyncSession = Depends(get_db)) -> ICatalogRepository:
    return CatalogRepository(session)


async def get_library_repository(session: AsyncSession = Depends(get_db)) -> ILibraryRepository:
    return LibraryRepository(session)


async def get_purchase_repository(session: AsyncSession = Depends(get_db)) -> IPurchaseRepository:
    return PurchaseRepository(session)


# ---------------------------------------------------------------------------
# Service providers
# ---------------------------------------------------------------------------
async def get_preference_service(
    library_repo: ILibraryRepository = Depends(get_library_repository),
    purchase_repo: IPurchaseRepository = Depends(get_purchase_repository),
    cache: Optional[IPreferenceCache] = Depends(get_preference_cache),
) -> IPreferenceService:
    return PreferenceService(
        library_repo=library_repo,
        purchase_repo=purchase_repo,
        config=preference_config,
        cache=cache,
    )


async def get_recommendation_service(
    catalog_repo: ICatalogRepository = Depends(get_catalog_repository),
    library_repo: ILibraryRepository = Depends(get_library_repository),
    preference_service: IPreferenceService = Depends(get_preference_service),
) -> IRecommendationService:
    return RecommendationService(
        catalog_repo=catalog_repo,
        library_repo=library_repo,
        preference_service=preference_service,
        config=recommendation_config,
    )


async def get_explanation_service(
    catalog_repo: ICatalogRepository = Depends(get_catalog_repository),
    preference_service: IPreferenceService = Depends(get_preference_service),
    recommendation_service: IRecommendationService = Depends(get_recommendation_service),
    llm: ILLMService = Depends(get_llm_service),
) -> IExplanationService:
    return ExplanationService(
        catalog_repo=catalog_repo,
        preference_service=preference_service,
        recommendation_service=recommendation_service,
        llm_service=llm,
    )


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------
async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> UUID:
    """Return the caller's id from the ``X-User-ID`` header set by the gateway."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing or invalid X-User-ID header",
    )
    if not x_user_id:
        raise credentials_exception
    try:
        return UUID(x_user_id)
    except ValueError:
        raise credentials_exception
