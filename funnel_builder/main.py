import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from funnel_builder.config import settings
from funnel_builder.db.base import init_db, session_scope
from funnel_builder.llm.client import LLMClientConfigError, LLMGenerationError
from funnel_builder.observability import initialize_langfuse, shutdown_langfuse
from funnel_builder.routers import (
    decks,
    followup,
    funnel_map,
    generate,
    intake,
    nps,
    offers,
    pages,
    pitch_videos,
    presentations,
    projects,
)
from funnel_builder.services.media_storage import MediaStorageConfigurationError

logger = logging.getLogger(__name__)


def _is_schema_mismatch_programming_error(exc: ProgrammingError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "42703":
        return True
    message = str(orig or exc).lower()
    return any(marker in message for marker in ("undefined column", "does not exist", "no such column"))


@asynccontextmanager
async def _app_lifespan(_app: FastAPI) -> AsyncIterator[None]:
    init_db()
    initialize_langfuse()
    try:
        yield
    finally:
        shutdown_langfuse()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Funnel Builder API",
        default_response_class=ORJSONResponse,
        lifespan=_app_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=sorted(set(settings.BACKEND_CORS_ORIGINS)),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )

    @app.exception_handler(MediaStorageConfigurationError)
    async def media_storage_configuration_error_handler(
        _request: Request, exc: MediaStorageConfigurationError
    ) -> ORJSONResponse:
        return ORJSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(LLMClientConfigError)
    async def llm_configuration_error_handler(_request: Request, exc: LLMClientConfigError) -> ORJSONResponse:
        logger.error("AI provider is not configured", extra={"error": str(exc)})
        return ORJSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(LLMGenerationError)
    async def llm_generation_error_handler(_request: Request, exc: LLMGenerationError) -> ORJSONResponse:
        logger.warning("AI generation failed", extra={"error": str(exc)})
        return ORJSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(ProgrammingError)
    async def programming_error_handler(_request: Request, exc: ProgrammingError) -> ORJSONResponse:
        logger.exception("Database programming error", exc_info=exc)
        if _is_schema_mismatch_programming_error(exc):
            return ORJSONResponse(
                status_code=503,
                content={"detail": "Database schema is out of date. Recreate the tables and redeploy."},
            )
        return ORJSONResponse(status_code=500, content={"detail": "Database query failed."})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("Unhandled server exception", exc_info=exc)
        return ORJSONResponse(status_code=500, content={"detail": "Internal server error."})

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/health/db")
    def health_db() -> dict[str, str]:
        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
            return {"db": "ok"}
        except Exception as exc:  # pragma: no cover - simple runtime check
            return {"db": f"error: {exc}"}

    app.include_router(projects.router)
    app.include_router(intake.router)
    app.include_router(offers.router)
    app.include_router(decks.router)
    app.include_router(presentations.router)
    app.include_router(pages.router)
    app.include_router(pages.public_router)
    app.include_router(pitch_videos.router)
    app.include_router(funnel_map.router)
    app.include_router(followup.router)
    app.include_router(generate.router)
    app.include_router(nps.router)

    return app


app = create_app()
