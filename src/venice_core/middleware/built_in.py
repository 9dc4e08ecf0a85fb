"""
Built-in middleware
"""
import json
import logging
import secrets
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from .. import console
from ..types import MetadataKeys
from .types import (
    Middleware,
    MiddlewareErrorContext,
    MiddlewareRequestContext,
    MiddlewareResponseContext,
)


def generate_request_id() -> str:
    """Generate a unique request ID"""
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def logging_middleware(
    logger: Optional[logging.Logger] = None,
    log_headers: bool = False,
    log_body: bool = False,
    log_response: bool = False,
) -> Middleware:
    """
    Log every request, response and error.

    Args:
        logger: Logger to write to. Default: ``venice_core.requests``
        log_headers: Include (masked) request headers
        log_body: Include the (redacted) request body
        log_response: Include the response data
    """
    log = logger or logging.getLogger("venice_core.requests")

    def on_request(context: MiddlewareRequestContext) -> MiddlewareRequestContext:
        method = context.options.get("method", "GET")
        extra: Dict[str, Any] = {"path": context.path, "method": method}
        if log_headers and context.options.get("headers"):
            extra["headers"] = console.sanitize_headers(context.options["headers"])
        if log_body and context.options.get("json") is not None:
            extra["body"] = console.sanitize_data(context.options["json"])
        log.info(f"-> {method} {context.path} {extra}")
        return context

    def on_response(context: MiddlewareResponseContext) -> MiddlewareResponseContext:
        status = context.response["status"]
        message = f"<- {status} {context.path} ({context.duration}ms)"
        if log_response:
            message += f" data={context.response['data']!r}"
        log.info(message)
        return context

    def on_error(context: MiddlewareErrorContext) -> None:
        log.error(
            f"x {context.path} failed ({context.duration}ms): "
            f"{context.error.code} {context.error.message}"
        )

    return Middleware(
        name="logging",
        on_request=on_request,
        on_response=on_response,
        on_error=on_error,
    )


def timing_middleware() -> Middleware:
    """Record start/end times in metadata and expose X-Response-Time."""

    def on_request(context: MiddlewareRequestContext) -> MiddlewareRequestContext:
        context.metadata[MetadataKeys.START_TIME] = int(time.time() * 1000)
        return context

    def on_response(context: MiddlewareResponseContext) -> MiddlewareResponseContext:
        context.metadata[MetadataKeys.END_TIME] = int(time.time() * 1000)
        context.metadata[MetadataKeys.TOTAL_DURATION] = context.duration
        context.response["headers"]["X-Response-Time"] = f"{context.duration}ms"
        return context

    return Middleware(name="timing", on_request=on_request, on_response=on_response)


def headers_middleware(headers: Dict[str, str]) -> Middleware:
    """Inject ``headers`` into every request, overriding same-named ones."""
    injected = dict(headers)

    def on_request(context: MiddlewareRequestContext) -> MiddlewareRequestContext:
        merged = dict(context.options.get("headers") or {})
        merged.update(injected)
        context.options["headers"] = merged
        return context

    return Middleware(name="headers", on_request=on_request)


def retry_metadata_middleware() -> Middleware:
    """Count attempts in metadata; repeated attempts get an X-Retry-Attempt header.

    Metadata starts empty for every call, so a retry layer seeds
    ``attempt_number`` with the number of attempts already made, from a
    middleware registered ahead of this one.
    """

    def on_request(context: MiddlewareRequestContext) -> MiddlewareRequestContext:
        attempt = context.metadata.get(MetadataKeys.ATTEMPT_NUMBER, 0) + 1
        context.metadata[MetadataKeys.ATTEMPT_NUMBER] = attempt
        if attempt > 1:
            headers = dict(context.options.get("headers") or {})
            headers["X-Retry-Attempt"] = str(attempt)
            context.options["headers"] = headers
        return context

    return Middleware(name="retry-metadata", on_request=on_request)


def request_id_middleware(
    header_name: str = "X-Request-ID",
    generator: Callable[[], str] = generate_request_id,
) -> Middleware:
    """Stamp each request with a fresh id, in a header and in metadata."""

    def on_request(context: MiddlewareRequestContext) -> MiddlewareRequestContext:
        request_id = generator()
        headers = dict(context.options.get("headers") or {})
        headers[header_name] = request_id
        context.options["headers"] = headers
        context.metadata[MetadataKeys.REQUEST_ID] = request_id
        return context

    return Middleware(name="request-id", on_request=on_request)


def _default_should_cache(context: Any) -> bool:
    return context.options.get("method", "GET") == "GET"


def caching_middleware(
    ttl_seconds: float = 60.0,
    max_size: int = 100,
    should_cache: Callable[[Any], bool] = _default_should_cache,
) -> Middleware:
    """
    Simple in-memory response cache.

    A fresh entry marks the request context with ``cache_hit`` and
    ``cached_data``; the client then returns the cached data without a
    transport call. The least recently used entry is evicted once
    ``max_size`` is reached. Responses without data are not stored.
    """
    cache: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()

    def cache_key(context: Any) -> str:
        query = context.options.get("query") or {}
        return f"{context.path}:{json.dumps(query, sort_keys=True, default=str)}"

    def on_request(context: MiddlewareRequestContext) -> MiddlewareRequestContext:
        if not should_cache(context):
            return context
        key = cache_key(context)
        entry = cache.get(key)
        if entry is not None:
            data, stored_at = entry
            if time.monotonic() - stored_at < ttl_seconds:
                cache.move_to_end(key)
                context.metadata[MetadataKeys.CACHE_HIT] = True
                context.metadata[MetadataKeys.CACHED_DATA] = data
            else:
                cache.pop(key, None)
        return context

    def on_response(context: MiddlewareResponseContext) -> MiddlewareResponseContext:
        if not should_cache(context) or context.metadata.get(MetadataKeys.CACHE_HIT):
            return context
        # Streaming responses carry no decoded body
        if context.response["data"] is None:
            return context
        key = cache_key(context)
        if key not in cache and len(cache) >= max_size:
            cache.popitem(last=False)
        cache[key] = (context.response["data"], time.monotonic())
        return context

    return Middleware(name="caching", on_request=on_request, on_response=on_response)


def console_trace_middleware() -> Middleware:
    """Pretty-print requests, responses and errors to stderr with rich."""

    def on_request(context: MiddlewareRequestContext) -> MiddlewareRequestContext:
        console.print_request(
            context.options.get("method", "GET"),
            context.path,
            context.options.get("headers"),
            context.options.get("json"),
        )
        return context

    def on_response(context: MiddlewareResponseContext) -> MiddlewareResponseContext:
        console.print_response(
            context.response["status"],
            context.response["status_text"],
            context.path,
            context.duration,
            context.response["data"],
        )
        return context

    def on_error(context: MiddlewareErrorContext) -> None:
        console.print_error(context.path, context.error, context.duration)

    return Middleware(
        name="console-trace",
        on_request=on_request,
        on_response=on_response,
        on_error=on_error,
    )
