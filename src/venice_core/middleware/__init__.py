"""
Composable request/response/error middleware.
"""
from .types import (
    Middleware,
    MiddlewareErrorContext,
    MiddlewareRequestContext,
    MiddlewareResponseContext,
)
from .manager import MiddlewareManager, now_ms
from .built_in import (
    caching_middleware,
    console_trace_middleware,
    generate_request_id,
    headers_middleware,
    logging_middleware,
    request_id_middleware,
    retry_metadata_middleware,
    timing_middleware,
)

__all__ = [
    # Types
    "Middleware",
    "MiddlewareRequestContext",
    "MiddlewareResponseContext",
    "MiddlewareErrorContext",
    # Manager
    "MiddlewareManager",
    "now_ms",
    # Built-in
    "caching_middleware",
    "console_trace_middleware",
    "generate_request_id",
    "headers_middleware",
    "logging_middleware",
    "request_id_middleware",
    "retry_metadata_middleware",
    "timing_middleware",
]
