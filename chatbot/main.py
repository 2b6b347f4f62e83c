# =============================================================================
# FastAPI Application Entry Point
# =============================================================================
#
# Run with:
#   uvicorn chatbot.main:app --reload
#
# On startup the pgvector table is created when that backend is selected.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from chatbot.api import ask, collections, train
from chatbot.config import settings
from chatbot.db.engine import dispose_engine, init_db
from chatbot.models.responses import HealthResponse

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    if settings.vectorstore_type == "pgvector":
        logger.info("Initialising pgvector schema")
        await init_db()
    yield
    await dispose_engine()


def create_app(*, with_lifespan: bool = True) -> FastAPI:
    """Build the FastAPI application with all routers mounted."""
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan if with_lifespan else None,
    )
    application.include_router(train.router)
    application.include_router(ask.router)
    application.include_router(collections.router)

    @application.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(version=settings.app_version, service=settings.app_name)

    return application


app = create_app()
