"""
Base HTTP client using httpx.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from ..config import ClientConfig, ResolvedConfig, is_ssl_verify_disabled_by_env, resolve_config
from ..errors import VeniceError, VeniceTimeoutError, classify
from ..middleware import (
    Middleware,
    MiddlewareManager,
    MiddlewareRequestContext,
    console_trace_middleware,
    generate_request_id,
    now_ms,
)
from ..rate_limiter import RateLimiter
from ..streaming import StreamingConsumer
from ..streaming.ndjson_reader import StreamErrorHandler
from ..types import (
    CancelToken,
    FetchResponse,
    HttpMethod,
    MetadataKeys,
    QueryParams,
    RequestOptions,
    ResponseType,
)
from .request_builder import build_body, build_headers, build_url

logger = logging.getLogger("venice_core.base_client")


async def _race(
    call: Awaitable[Any],
    cancel_token: Optional[CancelToken],
    timeout: float,
) -> Any:
    """
    Await ``call`` bounded by ``timeout`` seconds and by ``cancel_token``.

    Raises:
        asyncio.CancelledError: If the token fired first
        VeniceTimeoutError: If the timeout elapsed first
    """
    task = asyncio.ensure_future(call)
    waiters = {task}
    fired: Optional["asyncio.Future[Any]"] = None
    if cancel_token is not None:
        fired = asyncio.ensure_future(cancel_token.wait())
        waiters.add(fired)

    try:
        await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if fired is not None:
            fired.cancel()
        if not task.done():
            task.cancel()
            await asyncio.wait({task})

    if cancel_token is not None and cancel_token.cancelled:
        if not task.cancelled() and task.exception() is None:
            # The call won the race by a hair; its response is discarded
            result = task.result()
            if isinstance(result, httpx.Response):
                await result.aclose()
        raise asyncio.CancelledError(cancel_token.reason)
    if task.cancelled():
        raise VeniceTimeoutError(f"Request timed out after {timeout}s")
    return task.result()


def _parse_error_body(response: httpx.Response, config: ResolvedConfig) -> Any:
    text = response.text
    if not text:
        return None
    try:
        return config.serializer.deserialize(text)
    except ValueError:
        return text


class AsyncVeniceClient:
    """
    Asynchronous client that every Venice API call goes through.

    Each call captures the configuration snapshot current at its start, waits
    for the shared rate limiter, runs the middleware chain and performs
    exactly one transport attempt. Failures surface as a single VeniceError
    subclass.

    Example:
        async with AsyncVeniceClient(ClientConfig(api_key="...")) as client:
            response = await client.get("/models")
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        httpx_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        middlewares: Optional[List[Middleware]] = None,
    ):
        self._config = resolve_config(config or ClientConfig())
        if httpx_client is not None:
            self._client = httpx_client
        else:
            # SSL_CERT_VERIFY=0 or NODE_TLS_REJECT_UNAUTHORIZED=0 disables SSL verification
            verify_ssl = not is_ssl_verify_disabled_by_env()
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=self._config.timeout.connect,
                    read=self._config.timeout.read,
                    write=self._config.timeout.write,
                    pool=self._config.timeout.connect,
                ),
                verify=verify_ssl,
            )
        self._rate_limiter = rate_limiter or RateLimiter(self._config.rate_limit)
        self._middleware = MiddlewareManager(middlewares)
        if self._config.debug:
            self._middleware.use(console_trace_middleware())
        self._closed = False

    @property
    def config(self) -> ResolvedConfig:
        """The configuration snapshot new calls will use"""
        return self._config

    @property
    def middleware(self) -> MiddlewareManager:
        return self._middleware

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def closed(self) -> bool:
        return self._closed

    def set_auth_token(self, token: str) -> None:
        """Authenticate subsequent calls with ``token``; in-flight calls are unaffected."""
        self._config = self._config.with_api_key(token)
        logger.debug("AsyncVeniceClient.set_auth_token: API key replaced")

    def set_header(self, name: str, value: str) -> None:
        """Add or replace a default header for subsequent calls."""
        self._config = self._config.with_header(name, value)

    def use(self, middleware: Middleware) -> "AsyncVeniceClient":
        """Register a middleware; returns the client for chaining."""
        self._middleware.use(middleware)
        return self

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Client has been closed")

    def _build_options(
        self,
        config: ResolvedConfig,
        method: HttpMethod,
        headers: Optional[Dict[str, str]],
        query: Optional[QueryParams],
        json: Optional[Any],
        body: Optional[Union[str, bytes]],
        timeout: Optional[float],
        response_type: ResponseType,
        cancel_token: Optional[CancelToken],
        request_id: str,
        accept: str = "application/json",
    ) -> RequestOptions:
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        has_body = json is not None or body is not None
        options: RequestOptions = {
            "method": method,
            "headers": build_headers(config, headers, has_body, request_id, accept),
            "response_type": response_type,
        }
        if query:
            options["query"] = query
        if json is not None:
            options["json"] = json
        if body is not None:
            options["body"] = body
        if timeout is not None:
            options["timeout"] = timeout
        if cancel_token is not None:
            options["cancel_token"] = cancel_token
        return options

    async def _prepare(
        self,
        path: str,
        method: HttpMethod,
        headers: Optional[Dict[str, str]],
        request_id: str,
        build: Callable[[], RequestOptions],
    ) -> RequestOptions:
        """Run ``build``; a VeniceError raised there still reaches the error hooks."""
        try:
            return build()
        except VeniceError as error:
            await self._middleware.execute_error(
                path,
                {"method": method, "headers": dict(headers or {})},
                error,
                now_ms(),
                {MetadataKeys.REQUEST_ID: request_id},
            )
            raise

    def _build_request(self, config: ResolvedConfig, path: str, options: RequestOptions) -> httpx.Request:
        url = build_url(config.base_url, path, options.get("query"))
        content = build_body(options.get("json"), options.get("body"), config.serializer)
        kwargs: Dict[str, Any] = {}
        if options.get("timeout") is not None:
            kwargs["timeout"] = httpx.Timeout(options["timeout"])
        return self._client.build_request(
            method=options.get("method", "GET"),
            url=url,
            headers=options.get("headers"),
            content=content,
            **kwargs,
        )

    async def _send(
        self,
        config: ResolvedConfig,
        context: MiddlewareRequestContext,
        stream: bool = False,
    ) -> httpx.Response:
        """One transport attempt; non-2xx and transport failures raise VeniceError."""
        options = context.options
        request = self._build_request(config, context.path, options)
        timeout = options.get("timeout") or config.timeout.read

        logger.debug(f"AsyncVeniceClient._send: {request.method} {request.url} stream={stream}")

        try:
            response = await _race(
                self._client.send(request, stream=stream),
                options.get("cancel_token"),
                timeout,
            )
        except httpx.TimeoutException as e:
            raise classify(exc=e, timed_out=True) from e
        except httpx.HTTPError as e:
            raise classify(exc=e) from e

        if response.is_success:
            return response

        if stream:
            try:
                await _race(response.aread(), options.get("cancel_token"), timeout)
            except httpx.HTTPError as e:
                raise classify(exc=e, timed_out=isinstance(e, httpx.TimeoutException)) from e
            finally:
                await response.aclose()
        error_body = _parse_error_body(response, config)
        error = classify(
            status=response.status_code,
            body=error_body,
            headers=dict(response.headers),
            request_path=context.path,
            request_body=options.get("json"),
        )
        logger.error(
            f"AsyncVeniceClient._send: {request.method} {context.path} -> "
            f"{response.status_code} {error.code}"
        )
        raise error

    def _decode_body(self, config: ResolvedConfig, response: httpx.Response, response_type: ResponseType) -> Any:
        if response_type == "bytes":
            return response.content
        text = response.text
        if response_type == "text":
            return text
        if not text:
            return None
        try:
            return config.serializer.deserialize(text)
        except ValueError:
            logger.debug("AsyncVeniceClient._decode_body: response is not JSON, returning text")
            return text

    async def request(
        self,
        path: str,
        method: HttpMethod = "GET",
        headers: Optional[Dict[str, str]] = None,
        query: Optional[QueryParams] = None,
        json: Optional[Any] = None,
        body: Optional[Union[str, bytes]] = None,
        timeout: Optional[float] = None,
        response_type: ResponseType = "json",
        cancel_token: Optional[CancelToken] = None,
    ) -> FetchResponse:
        """
        Perform one API call.

        Args:
            path: Path relative to the base URL (``/chat/completions``)
            method: HTTP method
            headers: Per-call headers, merged over the default headers
            query: Query string parameters
            json: JSON body
            body: Raw body (wins over ``json``)
            timeout: Overall limit in seconds. Default: the configured read timeout
            response_type: How to hand back a successful body
            cancel_token: Aborts the call when fired

        Returns:
            FetchResponse for a 2xx response

        Raises:
            VeniceError: Exactly one variant describing the failure
            asyncio.CancelledError: If ``cancel_token`` fired
            RuntimeError: If the client has been closed
        """
        self._ensure_open()
        config = self._config
        request_id = generate_request_id()
        options = await self._prepare(
            path, method, headers, request_id,
            lambda: self._build_options(
                config, method, headers, query, json, body, timeout, response_type, cancel_token, request_id
            ),
        )

        async with self._rate_limiter.slot():
            context = await self._middleware.execute_request(
                path, options, {MetadataKeys.REQUEST_ID: request_id}
            )
            start_time = context.timestamp

            if context.metadata.get(MetadataKeys.CACHE_HIT):
                logger.debug(f"AsyncVeniceClient.request: cache hit for {context.path}")
                cached = FetchResponse(
                    status=200,
                    status_text="OK",
                    headers={},
                    data=context.metadata.get(MetadataKeys.CACHED_DATA),
                    ok=True,
                )
                result = await self._middleware.execute_response(
                    context.path, context.options, cached, start_time, context.metadata
                )
                return result.response

            try:
                response = await self._send(config, context)
            except VeniceError as error:
                await self._middleware.execute_error(
                    context.path, context.options, error, start_time, context.metadata
                )
                raise

            fetch_response = FetchResponse(
                status=response.status_code,
                status_text=response.reason_phrase or "",
                headers=dict(response.headers),
                data=self._decode_body(config, response, context.options.get("response_type", "json")),
                ok=True,
            )
            result = await self._middleware.execute_response(
                context.path, context.options, fetch_response, start_time, context.metadata
            )
            return result.response

    async def get(self, path: str, **kwargs: Any) -> FetchResponse:
        """GET request."""
        return await self.request(path, method="GET", **kwargs)

    async def post(self, path: str, **kwargs: Any) -> FetchResponse:
        """POST request."""
        return await self.request(path, method="POST", **kwargs)

    async def put(self, path: str, **kwargs: Any) -> FetchResponse:
        """PUT request."""
        return await self.request(path, method="PUT", **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> FetchResponse:
        """PATCH request."""
        return await self.request(path, method="PATCH", **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> FetchResponse:
        """DELETE request."""
        return await self.request(path, method="DELETE", **kwargs)

    @asynccontextmanager
    async def stream(
        self,
        path: str,
        method: HttpMethod = "POST",
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Any] = None,
        query: Optional[QueryParams] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> AsyncIterator[httpx.Response]:
        """
        Open a streaming response whose status has already been checked.

        The rate limiter slot is held until the block exits, and the response
        is closed on every exit path. ``timeout`` bounds the wait for the
        response headers, not the whole body.

        Example:
            async with client.stream("/chat/completions", json=payload) as response:
                async for chunk in response.aiter_bytes():
                    ...
        """
        self._ensure_open()
        config = self._config
        request_id = generate_request_id()
        options = await self._prepare(
            path, method, headers, request_id,
            lambda: self._build_options(
                config, method, headers, query, json, None, timeout, "json", cancel_token,
                request_id, accept="application/x-ndjson",
            ),
        )

        async with self._rate_limiter.slot():
            context = await self._middleware.execute_request(
                path, options, {MetadataKeys.REQUEST_ID: request_id}
            )
            start_time = context.timestamp

            try:
                response = await self._send(config, context, stream=True)
            except VeniceError as error:
                await self._middleware.execute_error(
                    context.path, context.options, error, start_time, context.metadata
                )
                raise

            try:
                await self._middleware.execute_response(
                    context.path,
                    context.options,
                    FetchResponse(
                        status=response.status_code,
                        status_text=response.reason_phrase or "",
                        headers=dict(response.headers),
                        data=None,
                        ok=True,
                    ),
                    start_time,
                    context.metadata,
                )
                yield response
            finally:
                await response.aclose()

    async def stream_events(
        self,
        path: str,
        json: Optional[Any] = None,
        method: HttpMethod = "POST",
        on_error: Optional[StreamErrorHandler] = None,
        cancel_token: Optional[CancelToken] = None,
        **kwargs: Any,
    ) -> AsyncGenerator[Any, None]:
        """
        Decoded NDJSON events of a streaming call, in arrival order.

        Malformed lines go to ``on_error`` and are skipped. Firing
        ``cancel_token`` ends the iteration quietly.

        Example:
            async for chunk in client.stream_events("/chat/completions", json=payload):
                print(chunk["choices"][0]["delta"].get("content", ""))
        """
        consumer = StreamingConsumer(self._config.serializer)
        async with self.stream(path, method=method, json=json, cancel_token=cancel_token, **kwargs) as response:
            events = consumer.iter_events(response, on_error=on_error, cancel_token=cancel_token)
            try:
                async for event in events:
                    yield event
            finally:
                await events.aclose()

    async def close(self) -> None:
        """Close the client."""
        if self._closed:
            return
        self._closed = True
        self._rate_limiter.destroy()
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncVeniceClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()
