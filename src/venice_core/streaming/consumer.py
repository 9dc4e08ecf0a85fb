"""
Callback-style consumption of an NDJSON response.
"""
import inspect
import logging
from typing import Any, AsyncGenerator, Callable, Optional

from ..config import default_serializer
from ..types import ByteStream, CancelToken
from .ndjson_reader import StreamErrorHandler, parse_ndjson_stream

logger = logging.getLogger("venice_core.streaming.consumer")


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class StreamingConsumer:
    """
    Drives an NDJSON response to completion, one callback per event.

    Each consumer reads one response; the underlying async iterator is
    one-shot and the response is closed on every exit path.

    Example:
        consumer = StreamingConsumer()
        async with client.stream("/chat/completions", json=payload) as response:
            await consumer.consume(response, on_event=print)
    """

    def __init__(self, serializer: Any = None) -> None:
        self._serializer = serializer or default_serializer

    def iter_events(
        self,
        response: ByteStream,
        on_error: Optional[StreamErrorHandler] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> AsyncGenerator[Any, None]:
        """Lazy async iterator over the decoded events of ``response``."""
        return parse_ndjson_stream(
            response.aiter_bytes(),
            self._serializer,
            on_error=on_error,
            cancel_token=cancel_token,
        )

    async def consume(
        self,
        response: ByteStream,
        on_event: Callable[[Any], Any],
        on_complete: Optional[Callable[[], Any]] = None,
        on_error: Optional[StreamErrorHandler] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> bool:
        """
        Read ``response`` to the end, invoking ``on_event`` per decoded event.

        Malformed lines go to ``on_error`` and reading continues. Read
        failures of the body itself propagate as VeniceStreamError or
        VeniceTimeoutError, and ``on_complete`` is not called.

        Args:
            response: An open streaming response (httpx.Response)
            on_event: Called once per event, in arrival order
            on_complete: Called once after the final line has been delivered
            on_error: Called once per malformed line
            cancel_token: Stops reading quietly when fired

        Returns:
            True if the stream ran to completion, False if it was cancelled
        """
        events = self.iter_events(response, on_error=on_error, cancel_token=cancel_token)
        try:
            async for event in events:
                await _maybe_await(on_event(event))
                if cancel_token is not None and cancel_token.cancelled:
                    break
        finally:
            await events.aclose()
            await response.aclose()

        if cancel_token is not None and cancel_token.cancelled:
            logger.debug("consume: stream cancelled, on_complete skipped")
            return False

        if on_complete is not None:
            await _maybe_await(on_complete())
        return True
