"""
Tests for middleware/manager.py
Logic testing: Loop, Path, Error Path coverage
"""
from unittest.mock import MagicMock

import pytest

from venice_core.errors import VeniceApiError
from venice_core.middleware import Middleware, MiddlewareManager


def _response(data=None):
    return {"status": 200, "status_text": "OK", "headers": {}, "data": data, "ok": True}


def _recording_middleware(name, calls):
    def on_request(context):
        calls.append(f"{name}:request")
        return context

    def on_response(context):
        calls.append(f"{name}:response")
        return context

    def on_error(context):
        calls.append(f"{name}:error")

    return Middleware(name=name, on_request=on_request, on_response=on_response, on_error=on_error)


class TestRegistration:
    """Tests for use/remove/clear/get_middlewares."""

    def test_use_is_chainable(self):
        manager = MiddlewareManager()
        result = manager.use(Middleware(name="a")).use(Middleware(name="b"))
        assert result is manager
        assert [m.name for m in manager.get_middlewares()] == ["a", "b"]

    def test_get_middlewares_returns_copy(self):
        manager = MiddlewareManager([Middleware(name="a")])
        manager.get_middlewares().clear()
        assert len(manager) == 1

    def test_remove(self):
        manager = MiddlewareManager([Middleware(name="a"), Middleware(name="b")])
        assert manager.remove("a") is True
        assert manager.remove("missing") is False
        assert [m.name for m in manager.get_middlewares()] == ["b"]

    def test_clear(self):
        manager = MiddlewareManager([Middleware(name="a")])
        manager.clear()
        assert len(manager) == 0


class TestExecution:
    """Tests for the three hook chains."""

    # Loop: registration order in every phase
    @pytest.mark.asyncio
    async def test_order_preserved(self):
        calls = []
        manager = MiddlewareManager([
            _recording_middleware("first", calls),
            _recording_middleware("second", calls),
            _recording_middleware("third", calls),
        ])

        context = await manager.execute_request("/models", {"method": "GET"})
        await manager.execute_response("/models", context.options, _response(), context.timestamp, context.metadata)
        await manager.execute_error("/models", context.options, VeniceApiError(), context.timestamp, context.metadata)

        assert calls == [
            "first:request", "second:request", "third:request",
            "first:response", "second:response", "third:response",
            "first:error", "second:error", "third:error",
        ]

    # Path: missing hooks are skipped
    @pytest.mark.asyncio
    async def test_missing_hooks_skipped(self):
        on_response = MagicMock(side_effect=lambda ctx: ctx)
        manager = MiddlewareManager([Middleware(name="only-response", on_response=on_response)])

        context = await manager.execute_request("/models", {})
        await manager.execute_response("/models", {}, _response(), context.timestamp)

        on_response.assert_called_once()

    @pytest.mark.asyncio
    async def test_metadata_carries_into_response(self):
        def tag(context):
            context.metadata["trace"] = "abc"
            return context

        seen = {}

        def read(context):
            seen.update(context.metadata)
            return context

        manager = MiddlewareManager([Middleware(on_request=tag, on_response=read)])
        context = await manager.execute_request("/models", {})
        await manager.execute_response("/models", {}, _response(), context.timestamp, context.metadata)

        assert seen["trace"] == "abc"

    @pytest.mark.asyncio
    async def test_initial_metadata(self):
        manager = MiddlewareManager()
        context = await manager.execute_request("/models", {}, {"request_id": "req_1"})
        assert context.metadata == {"request_id": "req_1"}

    @pytest.mark.asyncio
    async def test_async_hooks_and_rewrites(self):
        async def rewrite(context):
            context.path = "/v2" + context.path
            context.options["headers"] = {"X-Injected": "yes"}
            return context

        manager = MiddlewareManager([Middleware(on_request=rewrite)])
        context = await manager.execute_request("/models", {"method": "GET"})

        assert context.path == "/v2/models"
        assert context.options["headers"] == {"X-Injected": "yes"}

    @pytest.mark.asyncio
    async def test_hook_returning_none_keeps_context(self):
        def mutate_only(context):
            context.metadata["touched"] = True

        manager = MiddlewareManager([Middleware(on_request=mutate_only)])
        context = await manager.execute_request("/models", {})

        assert context.metadata["touched"] is True

    @pytest.mark.asyncio
    async def test_response_duration(self):
        manager = MiddlewareManager()
        result = await manager.execute_response("/models", {}, _response({"x": 1}), start_time=0)
        assert result.duration > 0
        assert result.response["data"] == {"x": 1}

    # Error Path: a failing error hook does not stop the others
    @pytest.mark.asyncio
    async def test_failing_error_hook_is_isolated(self):
        later = MagicMock()

        def broken(context):
            raise RuntimeError("hook failed")

        manager = MiddlewareManager([
            Middleware(name="broken", on_error=broken),
            Middleware(name="later", on_error=later),
        ])
        await manager.execute_error("/models", {}, VeniceApiError(), start_time=0)

        later.assert_called_once()

    # Error Path: request hooks propagate
    @pytest.mark.asyncio
    async def test_failing_request_hook_propagates(self):
        def broken(context):
            raise RuntimeError("hook failed")

        manager = MiddlewareManager([Middleware(on_request=broken)])
        with pytest.raises(RuntimeError, match="hook failed"):
            await manager.execute_request("/models", {})
