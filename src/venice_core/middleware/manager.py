"""
Middleware execution pipeline
"""
import inspect
import logging
import time
from typing import Any, List, Optional

from ..errors import VeniceError
from ..types import FetchResponse, Metadata, RequestOptions
from .types import (
    Middleware,
    MiddlewareErrorContext,
    MiddlewareRequestContext,
    MiddlewareResponseContext,
)

logger = logging.getLogger("venice_core.middleware")


def now_ms() -> int:
    """Current time as epoch milliseconds"""
    return int(time.time() * 1000)


async def _call_hook(hook: Any, context: Any) -> Any:
    result = hook(context)
    if inspect.isawaitable(result):
        result = await result
    return result


class MiddlewareManager:
    """
    Ordered list of middleware and the three hook chains run around a call.

    Hooks execute strictly in registration order in every phase; a middleware
    without a hook for a phase is skipped in that phase.
    """

    def __init__(self, middlewares: Optional[List[Middleware]] = None) -> None:
        self._middlewares: List[Middleware] = list(middlewares or [])

    def use(self, middleware: Middleware) -> "MiddlewareManager":
        """
        Register a middleware.

        Args:
            middleware: The middleware to append

        Returns:
            This manager, for chaining
        """
        self._middlewares.append(middleware)
        logger.debug(f"use: registered middleware name={middleware.name!r}")
        return self

    def remove(self, name: str) -> bool:
        """Remove the first middleware called ``name``; True if one was removed."""
        for index, middleware in enumerate(self._middlewares):
            if middleware.name == name:
                del self._middlewares[index]
                return True
        return False

    def clear(self) -> None:
        """Remove all middleware"""
        self._middlewares = []

    def get_middlewares(self) -> List[Middleware]:
        """Registered middleware in execution order (a copy)"""
        return list(self._middlewares)

    def __len__(self) -> int:
        return len(self._middlewares)

    async def execute_request(
        self,
        path: str,
        options: RequestOptions,
        metadata: Optional[Metadata] = None,
    ) -> MiddlewareRequestContext:
        """
        Run every ``on_request`` hook over a fresh request context.

        Args:
            path: Request path
            options: Request options (mutated in place by hooks)
            metadata: Initial metadata. Default: empty

        Returns:
            The context after the last hook
        """
        context = MiddlewareRequestContext(
            path=path,
            options=options,
            timestamp=now_ms(),
            metadata=dict(metadata) if metadata else {},
        )

        for middleware in self._middlewares:
            if middleware.on_request is None:
                continue
            result = await _call_hook(middleware.on_request, context)
            if result is not None:
                context = result

        return context

    async def execute_response(
        self,
        path: str,
        options: RequestOptions,
        response: FetchResponse,
        start_time: int,
        metadata: Optional[Metadata] = None,
    ) -> MiddlewareResponseContext:
        """
        Run every ``on_response`` hook.

        Args:
            path: Request path
            options: Request options as sent
            response: The response
            start_time: Epoch milliseconds when the request started
            metadata: Metadata from the request phase

        Returns:
            The context after the last hook
        """
        context = MiddlewareResponseContext(
            path=path,
            options=options,
            response=response,
            timestamp=start_time,
            duration=now_ms() - start_time,
            metadata=metadata if metadata is not None else {},
        )

        for middleware in self._middlewares:
            if middleware.on_response is None:
                continue
            result = await _call_hook(middleware.on_response, context)
            if result is not None:
                context = result

        return context

    async def execute_error(
        self,
        path: str,
        options: RequestOptions,
        error: VeniceError,
        start_time: int,
        metadata: Optional[Metadata] = None,
    ) -> None:
        """
        Run every ``on_error`` hook for its side effects.

        The caller re-raises ``error`` afterwards. A hook that itself fails is
        logged and the remaining hooks still run, so the original error is the
        one the caller sees.
        """
        context = MiddlewareErrorContext(
            path=path,
            options=options,
            error=error,
            timestamp=start_time,
            duration=now_ms() - start_time,
            metadata=metadata if metadata is not None else {},
        )

        for middleware in self._middlewares:
            if middleware.on_error is None:
                continue
            try:
                await _call_hook(middleware.on_error, context)
            except Exception:
                logger.exception(
                    f"execute_error: on_error hook of middleware {middleware.name!r} failed"
                )
