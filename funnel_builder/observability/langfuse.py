from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Iterator

from langfuse import Langfuse

from funnel_builder.config import settings


logger = logging.getLogger(__name__)


class LangfuseConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class TraceContext:
    """Identifies the funnel work an LLM call belongs to."""

    name: str
    user_id: str | None = None
    project_id: str | None = None
    tags: list[str] = field(default_factory=list)


_langfuse_client: Langfuse | None = None
_langfuse_initialized = False
_current_trace: ContextVar[TraceContext | None] = ContextVar("funnel_trace_context", default=None)


def langfuse_enabled() -> bool:
    return bool(settings.LANGFUSE_ENABLED)


def _environment() -> str:
    return settings.LANGFUSE_ENVIRONMENT or settings.ENVIRONMENT


def _validate_settings() -> None:
    missing = [
        name
        for name, value in (
            ("LANGFUSE_PUBLIC_KEY", settings.LANGFUSE_PUBLIC_KEY),
            ("LANGFUSE_SECRET_KEY", settings.LANGFUSE_SECRET_KEY),
        )
        if not value
    ]
    if missing:
        raise LangfuseConfigError(f"LANGFUSE_ENABLED is true but {', '.join(missing)} not configured.")
    if not 0.0 <= float(settings.LANGFUSE_SAMPLE_RATE) <= 1.0:
        raise LangfuseConfigError("LANGFUSE_SAMPLE_RATE must be between 0.0 and 1.0.")


def initialize_langfuse() -> None:
    global _langfuse_client
    global _langfuse_initialized

    if _langfuse_initialized:
        return

    if not langfuse_enabled():
        if settings.LANGFUSE_REQUIRED:
            raise LangfuseConfigError("LANGFUSE_REQUIRED is true but LANGFUSE_ENABLED is false.")
        _langfuse_initialized = True
        logger.info("Langfuse tracing disabled", extra={"environment": _environment()})
        return

    _validate_settings()
    _langfuse_client = Langfuse(
        public_key=settings.LANGFUSE_PUBLIC_KEY,
        secret_key=settings.LANGFUSE_SECRET_KEY,
        host=settings.LANGFUSE_HOST,
        environment=_environment(),
        release=settings.LANGFUSE_RELEASE,
        sample_rate=float(settings.LANGFUSE_SAMPLE_RATE),
        timeout=int(settings.LANGFUSE_TIMEOUT_SECONDS),
    )
    _langfuse_initialized = True
    logger.info(
        "Langfuse initialized",
        extra={"host": settings.LANGFUSE_HOST, "environment": _environment()},
    )


def get_langfuse_client() -> Langfuse | None:
    initialize_langfuse()
    if not langfuse_enabled():
        return None
    if _langfuse_client is None:
        raise LangfuseConfigError("Langfuse client is not initialized.")
    return _langfuse_client


def shutdown_langfuse() -> None:
    global _langfuse_client
    global _langfuse_initialized

    client = _langfuse_client
    _langfuse_client = None
    _langfuse_initialized = False
    if client is not None:
        client.shutdown()


@contextmanager
def bind_trace_context(trace: TraceContext | None) -> Iterator[None]:
    token = _current_trace.set(trace)
    try:
        yield
    finally:
        _current_trace.reset(token)


def _update_trace(client: Langfuse, default_name: str | None, metadata: dict[str, Any] | None) -> None:
    trace = _current_trace.get()
    name = trace.name if trace else default_name
    if name is None and trace is None and not metadata:
        return
    trace_metadata = dict(metadata or {})
    if trace and trace.project_id:
        trace_metadata["project_id"] = trace.project_id
    client.update_current_trace(
        name=name,
        user_id=trace.user_id if trace else None,
        session_id=trace.project_id if trace else None,
        metadata=trace_metadata or None,
        tags=list(trace.tags) if trace and trace.tags else None,
    )


@contextmanager
def start_langfuse_span(
    *,
    name: str,
    input: Any | None = None,
    metadata: dict[str, Any] | None = None,
) -> Iterator[Any | None]:
    client = get_langfuse_client()
    if client is None:
        yield None
        return

    with client.start_as_current_span(name=name, input=input, metadata=metadata) as span:
        _update_trace(client, name, metadata)
        try:
            yield span
        except Exception as exc:  # noqa: BLE001
            span.update(level="ERROR", status_message=str(exc))
            raise


@contextmanager
def start_langfuse_generation(
    *,
    name: str,
    model: str,
    input: Any | None = None,
    metadata: dict[str, Any] | None = None,
    model_parameters: dict[str, Any] | None = None,
) -> Iterator[Any | None]:
    client = get_langfuse_client()
    if client is None:
        yield None
        return

    with client.start_as_current_generation(
        name=name,
        input=input,
        model=model,
        metadata=metadata,
        model_parameters=model_parameters,
    ) as generation:
        _update_trace(client, None, metadata)
        try:
            yield generation
        except Exception as exc:  # noqa: BLE001
            generation.update(level="ERROR", status_message=str(exc))
            raise
