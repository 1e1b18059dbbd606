from .langfuse import (
    LangfuseConfigError,
    TraceContext,
    bind_trace_context,
    initialize_langfuse,
    shutdown_langfuse,
    start_langfuse_generation,
    start_langfuse_span,
)

__all__ = [
    "LangfuseConfigError",
    "TraceContext",
    "bind_trace_context",
    "initialize_langfuse",
    "shutdown_langfuse",
    "start_langfuse_generation",
    "start_langfuse_span",
]
