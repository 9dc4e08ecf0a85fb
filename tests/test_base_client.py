"""
Tests for core/base_client.py
Logic testing: Happy Path, Error Path, Concurrency coverage
"""
import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from venice_core.config import ClientConfig, RateLimitConfig
from venice_core.core.base_client import AsyncVeniceClient
from venice_core.errors import (
    VeniceAuthError,
    VeniceModelNotFoundError,
    VeniceNetworkError,
    VeniceRateLimitError,
    VeniceTimeoutError,
    VeniceValidationError,
)
from venice_core.middleware import Middleware, caching_middleware
from venice_core.types import CancelToken, MetadataKeys

BASE_URL = "https://api.venice.ai/api/v1"


def transport_client(handler):
    """httpx.AsyncClient over a (possibly async) request handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class _BrokenBody(httpx.AsyncByteStream):
    """Response body that fails after its first chunk."""

    def __init__(self):
        self.closed = False

    async def __aiter__(self):
        yield b'{"error":'
        raise httpx.ReadError("connection reset")

    async def aclose(self):
        self.closed = True


class TestRequest:
    """Tests for AsyncVeniceClient.request and the method helpers."""

    # Happy Path: auth and request id headers
    @pytest.mark.asyncio
    async def test_get_sends_auth_and_request_id(self, client_config, router, mock_httpx_client):
        route = router.get("/models").respond(200, json={"data": [{"id": "llama-3.3-70b"}]})

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            response = await client.get("/models")

        assert response["status"] == 200
        assert response["ok"] is True
        assert response["data"] == {"data": [{"id": "llama-3.3-70b"}]}

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer test-api-key-1234567890"
        assert request.headers["X-Request-ID"].startswith("req_")
        assert str(request.url) == f"{BASE_URL}/models"

    @pytest.mark.asyncio
    async def test_post_json(self, client_config, router, mock_httpx_client):
        route = router.post("/chat/completions").respond(200, json={"id": "chat-1"})
        payload = {"model": "llama-3.3-70b", "messages": [{"role": "user", "content": "hi"}]}

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            response = await client.post("/chat/completions", json=payload)

        request = route.calls.last.request
        assert json.loads(request.content) == payload
        assert request.headers["Content-Type"] == "application/json"
        assert response["data"] == {"id": "chat-1"}

    @pytest.mark.asyncio
    async def test_query_params(self, client_config, router, mock_httpx_client):
        route = router.get("/models").respond(200, json=[])

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            await client.get("/models", query={"type": "image"})

        assert route.calls.last.request.url.params["type"] == "image"

    @pytest.mark.asyncio
    async def test_response_types(self, client_config, router, mock_httpx_client):
        router.get("/audio").respond(200, content=b"\x00\x01binary")
        router.get("/plain").respond(200, text="hello")

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            audio = await client.get("/audio", response_type="bytes")
            plain = await client.get("/plain", response_type="text")
            fallback = await client.get("/plain")

        assert audio["data"] == b"\x00\x01binary"
        assert plain["data"] == "hello"
        assert fallback["data"] == "hello"

    # Error Path: missing key
    @pytest.mark.asyncio
    async def test_missing_api_key(self, router, mock_httpx_client):
        route = router.get("/models").respond(200, json={})
        seen = []

        async with AsyncVeniceClient(ClientConfig(), httpx_client=mock_httpx_client) as client:
            client.use(Middleware(on_error=seen.append))
            with pytest.raises(VeniceAuthError):
                await client.get("/models")

        assert route.call_count == 0
        assert len(seen) == 1
        assert isinstance(seen[0].error, VeniceAuthError)
        assert seen[0].path == "/models"
        assert seen[0].metadata[MetadataKeys.REQUEST_ID].startswith("req_")

    @pytest.mark.asyncio
    async def test_missing_api_key_on_stream(self, mock_httpx_client):
        seen = []

        async with AsyncVeniceClient(ClientConfig(), httpx_client=mock_httpx_client) as client:
            client.use(Middleware(on_error=seen.append))
            with pytest.raises(VeniceAuthError):
                async with client.stream("/chat/completions", json={}):
                    pass  # pragma: no cover

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_closed_client(self, client_config, mock_httpx_client):
        client = AsyncVeniceClient(client_config, httpx_client=mock_httpx_client)
        await client.close()
        with pytest.raises(RuntimeError, match="closed"):
            await client.get("/models")


class TestErrorMapping:
    """Non-2xx and transport failures surface as one VeniceError."""

    @pytest.mark.asyncio
    async def test_unauthorized(self, client_config, router, mock_httpx_client):
        router.get("/models").respond(401, json={"error": "Invalid API key"})

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            with pytest.raises(VeniceAuthError) as exc_info:
                await client.get("/models")

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_rate_limited(self, client_config, router, mock_httpx_client):
        router.post("/chat/completions").respond(
            429, json={"error": "Too many requests"}, headers={"Retry-After": "3"}
        )

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            with pytest.raises(VeniceRateLimitError) as exc_info:
                await client.post("/chat/completions", json={"model": "m"})

        assert exc_info.value.retry_after_seconds == 3

    @pytest.mark.asyncio
    async def test_validation(self, client_config, router, mock_httpx_client):
        router.post("/chat/completions").respond(
            400, json={"error": "Invalid request", "details": {"temperature": {"_errors": ["too high"]}}}
        )

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            with pytest.raises(VeniceValidationError):
                await client.post("/chat/completions", json={"temperature": 9})

    @pytest.mark.asyncio
    async def test_model_not_found_uses_request_body(self, client_config, router, mock_httpx_client):
        router.post("/chat/completions").respond(404, json={"error": "Specified model not found"})

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            with pytest.raises(VeniceModelNotFoundError) as exc_info:
                await client.post("/chat/completions", json={"model": "ghost-model"})

        assert exc_info.value.model_id == "ghost-model"

    @pytest.mark.asyncio
    async def test_network_error(self, client_config, router, mock_httpx_client):
        router.get("/models").mock(side_effect=httpx.ConnectError("connection refused"))

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            with pytest.raises(VeniceNetworkError) as exc_info:
                await client.get("/models")

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_transport_timeout(self, client_config, router, mock_httpx_client):
        router.get("/models").mock(side_effect=httpx.ReadTimeout("read timed out"))

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            with pytest.raises(VeniceTimeoutError):
                await client.get("/models")

    @pytest.mark.asyncio
    async def test_call_timeout(self, client_config):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        async with AsyncVeniceClient(client_config, httpx_client=transport_client(slow)) as client:
            with pytest.raises(VeniceTimeoutError):
                await client.get("/models", timeout=0.05)
            assert client.rate_limiter.in_flight == 0

    # Error Path: error hooks see the classified error and request metadata
    @pytest.mark.asyncio
    async def test_error_hooks(self, client_config, router, mock_httpx_client):
        router.get("/models").respond(500, json={"error": "boom"})
        on_error = MagicMock()

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            client.use(Middleware(name="spy", on_error=on_error))
            with pytest.raises(Exception):
                await client.get("/models")

        context = on_error.call_args[0][0]
        assert context.error.status == 500
        assert context.metadata[MetadataKeys.REQUEST_ID].startswith("req_")


class TestCancellation:
    """CancelToken aborts the transport call."""

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self, client_config):
        started = asyncio.Event()

        async def stalled(request):
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, json={})

        token = CancelToken()
        on_error = MagicMock()

        async with AsyncVeniceClient(client_config, httpx_client=transport_client(stalled)) as client:
            client.use(Middleware(on_error=on_error))
            task = asyncio.create_task(client.get("/models", cancel_token=token))
            await started.wait()
            token.cancel()

            with pytest.raises(asyncio.CancelledError):
                await task

            assert client.rate_limiter.in_flight == 0
        on_error.assert_not_called()


class TestConfigSnapshots:
    """Header and key updates apply to subsequent calls only."""

    @pytest.mark.asyncio
    async def test_set_header_does_not_touch_in_flight(self, client_config):
        seen = []
        release = asyncio.Event()

        async def handler(request):
            seen.append(request.headers.get("X-Trace"))
            if len(seen) == 1:
                await release.wait()
            return httpx.Response(200, json={})

        async with AsyncVeniceClient(client_config, httpx_client=transport_client(handler)) as client:
            first = asyncio.create_task(client.get("/models"))
            while not seen:
                await asyncio.sleep(0.01)

            client.set_header("X-Trace", "on")
            release.set()
            await first
            await client.get("/models")

        assert seen == [None, "on"]

    @pytest.mark.asyncio
    async def test_set_auth_token(self, client_config, router, mock_httpx_client):
        route = router.get("/models").respond(200, json={})

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            client.set_auth_token("rotated-key")
            await client.get("/models")

        assert route.calls.last.request.headers["Authorization"] == "Bearer rotated-key"


class TestMiddlewareIntegration:
    """Middleware runs around every call."""

    @pytest.mark.asyncio
    async def test_request_hook_rewrites_headers(self, client_config, router, mock_httpx_client):
        route = router.get("/models").respond(200, json={})

        def add_header(context):
            context.options["headers"]["X-Client"] = "venice-core-tests"
            return context

        async with AsyncVeniceClient(
            client_config,
            httpx_client=mock_httpx_client,
            middlewares=[Middleware(on_request=add_header)],
        ) as client:
            await client.get("/models")

        assert route.calls.last.request.headers["X-Client"] == "venice-core-tests"

    @pytest.mark.asyncio
    async def test_response_hook_can_replace_data(self, client_config, router, mock_httpx_client):
        router.get("/models").respond(200, json={"data": [1, 2]})

        def unwrap(context):
            context.response["data"] = context.response["data"]["data"]
            return context

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            client.use(Middleware(on_response=unwrap))
            response = await client.get("/models")

        assert response["data"] == [1, 2]

    @pytest.mark.asyncio
    async def test_cache_hit_skips_transport(self, client_config, router, mock_httpx_client):
        route = router.get("/models").respond(200, json={"data": ["a"]})

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            client.use(caching_middleware(ttl_seconds=60))
            first = await client.get("/models")
            second = await client.get("/models")

        assert route.call_count == 1
        assert first["data"] == second["data"] == {"data": ["a"]}

    def test_debug_registers_console_trace(self, mock_httpx_client):
        client = AsyncVeniceClient(ClientConfig(api_key="key", debug=True), httpx_client=mock_httpx_client)
        assert [m.name for m in client.middleware.get_middlewares()] == ["console-trace"]


class TestRateLimiting:
    """All calls on a client share one limiter."""

    @pytest.mark.asyncio
    async def test_max_concurrent(self):
        active = 0
        peak = 0
        delay = 0.05
        loop = asyncio.get_running_loop()
        finished = []

        async def handler(request):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(delay)
            active -= 1
            return httpx.Response(200, json={})

        config = ClientConfig(api_key="key", rate_limit=RateLimitConfig(max_concurrent=2))
        async with AsyncVeniceClient(config, httpx_client=transport_client(handler)) as client:

            async def call():
                await client.get("/models")
                finished.append(loop.time() - start)

            start = loop.time()
            await asyncio.gather(*(call() for _ in range(5)))

        assert peak == 2
        # Five calls through two slots complete in three waves
        finished.sort()
        assert finished[1] < finished[2]
        assert finished[2] >= 2 * delay * 0.9
        assert finished[4] >= 3 * delay * 0.9


class TestStreaming:
    """Tests for stream and stream_events."""

    @pytest.mark.asyncio
    async def test_stream_events(self, client_config, router, mock_httpx_client):
        body = b'{"choices":[{"delta":{"content":"Hel"}}]}\n{"choices":[{"delta":{"content":"lo"}}]}\n'
        route = router.post("/chat/completions").respond(200, content=body)

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            events = [
                event async for event in client.stream_events(
                    "/chat/completions", json={"model": "m", "stream": True}
                )
            ]
            assert client.rate_limiter.in_flight == 0

        assert [e["choices"][0]["delta"]["content"] for e in events] == ["Hel", "lo"]
        assert route.calls.last.request.headers["Accept"] == "application/x-ndjson"

    @pytest.mark.asyncio
    async def test_stream_events_reports_malformed_lines(self, client_config, router, mock_httpx_client):
        router.post("/chat/completions").respond(200, content=b'{"a":1}\n<html>\n{"a":2}')
        errors = []

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            events = [
                event async for event in client.stream_events(
                    "/chat/completions", json={}, on_error=errors.append
                )
            ]

        assert events == [{"a": 1}, {"a": 2}]
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_stream_error_status(self, client_config, router, mock_httpx_client):
        router.post("/chat/completions").respond(429, json={"error": "slow down", "retry_after": 2})

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            with pytest.raises(VeniceRateLimitError) as exc_info:
                async with client.stream("/chat/completions", json={}):
                    pass  # pragma: no cover

            assert client.rate_limiter.in_flight == 0
        assert exc_info.value.retry_after_seconds == 2

    # Error Path: the error body breaks off mid-read
    @pytest.mark.asyncio
    async def test_stream_error_body_read_failure(self, client_config):
        body = _BrokenBody()

        def handler(request):
            return httpx.Response(500, stream=body)

        on_error = MagicMock()

        async with AsyncVeniceClient(client_config, httpx_client=transport_client(handler)) as client:
            client.use(Middleware(on_error=on_error))
            with pytest.raises(VeniceNetworkError) as exc_info:
                async with client.stream("/chat/completions", json={}):
                    pass  # pragma: no cover

            assert client.rate_limiter.in_flight == 0

        assert isinstance(exc_info.value.__cause__, httpx.ReadError)
        assert body.closed is True
        assert on_error.call_args[0][0].error is exc_info.value

    @pytest.mark.asyncio
    async def test_stream_raw_response(self, client_config, router, mock_httpx_client):
        router.post("/audio/speech").respond(200, content=b"chunk-1chunk-2")

        async with AsyncVeniceClient(client_config, httpx_client=mock_httpx_client) as client:
            async with client.stream("/audio/speech", json={"input": "hi"}) as response:
                data = b"".join([chunk async for chunk in response.aiter_bytes()])

        assert data == b"chunk-1chunk-2"
