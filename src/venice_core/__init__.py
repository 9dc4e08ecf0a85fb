"""
Client-side request pipeline for the Venice AI API.

Provides the HTTP client, middleware engine, NDJSON streaming consumer,
rate limiter and typed error taxonomy that every Venice API call goes through.
"""
from .types import (
    CancelToken,
    FetchResponse,
    HttpMethod,
    Metadata,
    MetadataKeys,
    RequestOptions,
    ResponseType,
    Serializer,
)
from .config import (
    ClientConfig,
    DefaultSerializer,
    RateLimitConfig,
    ResolvedConfig,
    TimeoutConfig,
    load_config_from_env,
    resolve_config,
)
from .errors import (
    ErrorKind,
    RecoveryHint,
    VeniceApiError,
    VeniceAuthError,
    VeniceCapacityError,
    VeniceError,
    VeniceModelNotFoundError,
    VeniceNetworkError,
    VenicePaymentRequiredError,
    VenicePermissionError,
    VeniceRateLimitError,
    VeniceStreamError,
    VeniceTimeoutError,
    VeniceValidationError,
    classify,
)
from .middleware import (
    Middleware,
    MiddlewareErrorContext,
    MiddlewareManager,
    MiddlewareRequestContext,
    MiddlewareResponseContext,
    caching_middleware,
    console_trace_middleware,
    headers_middleware,
    logging_middleware,
    request_id_middleware,
    retry_metadata_middleware,
    timing_middleware,
)
from .rate_limiter import RateLimiter, RateLimiterStats, create_rate_limiter
from .streaming import (
    NdjsonDecoder,
    StreamingConsumer,
    collect_stream,
    parse_ndjson_stream,
    text_only_stream,
)
from .core.base_client import AsyncVeniceClient
from .factory import create_client, create_client_from_env

__version__ = "0.1.0"

__all__ = [
    # Types
    "CancelToken",
    "FetchResponse",
    "HttpMethod",
    "Metadata",
    "MetadataKeys",
    "RequestOptions",
    "ResponseType",
    "Serializer",
    # Config
    "ClientConfig",
    "DefaultSerializer",
    "RateLimitConfig",
    "ResolvedConfig",
    "TimeoutConfig",
    "load_config_from_env",
    "resolve_config",
    # Errors
    "ErrorKind",
    "RecoveryHint",
    "VeniceError",
    "VeniceApiError",
    "VeniceAuthError",
    "VeniceCapacityError",
    "VeniceModelNotFoundError",
    "VeniceNetworkError",
    "VenicePaymentRequiredError",
    "VenicePermissionError",
    "VeniceRateLimitError",
    "VeniceStreamError",
    "VeniceTimeoutError",
    "VeniceValidationError",
    "classify",
    # Middleware
    "Middleware",
    "MiddlewareManager",
    "MiddlewareRequestContext",
    "MiddlewareResponseContext",
    "MiddlewareErrorContext",
    "caching_middleware",
    "console_trace_middleware",
    "headers_middleware",
    "logging_middleware",
    "request_id_middleware",
    "retry_metadata_middleware",
    "timing_middleware",
    # Rate limiting
    "RateLimiter",
    "RateLimiterStats",
    "create_rate_limiter",
    # Streaming
    "NdjsonDecoder",
    "StreamingConsumer",
    "collect_stream",
    "parse_ndjson_stream",
    "text_only_stream",
    # Client
    "AsyncVeniceClient",
    "create_client",
    "create_client_from_env",
]
