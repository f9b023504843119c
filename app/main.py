"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.preference_routes import router as preference_router
from app.api.recommendation_routes import router as recommendation_router
from app.core.config import settings
from app.core.redis_client import close_redis
from app.infrastructure.database.connection import init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(
        "Starting Folio (algorithm %s, llm provider %s)",
        settings.algorithm_version,
        settings.llm_provider,
    )
    await init_db()
    logger.info("Database initialized")
    yield
    await close_redis()
    logger.info("Shutting down Folio")


app = FastAPI(
    title="Folio",
    description="Deterministic, explainable book recommendations",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(recommendation_router)
app.include_router(preference_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
