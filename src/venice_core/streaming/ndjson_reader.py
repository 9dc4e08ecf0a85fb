"""
Newline-Delimited JSON (NDJSON) stream parser.
"""
import asyncio
import codecs
import inspect
import logging
from typing import Any, AsyncGenerator, AsyncIterable, AsyncIterator, Callable, List, Optional, Union

import httpx

from ..config import DefaultSerializer
from ..errors import VeniceError, VeniceStreamError, create_from_transport_error, create_stream_error
from ..types import CancelToken

logger = logging.getLogger("venice_core.streaming")

SSE_DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

StreamErrorHandler = Callable[[VeniceStreamError], Any]

# Marker for a line that was reported and dropped
_SKIP = object()


class NdjsonDecoder:
    """
    Incremental line splitter over a byte stream.

    Holds at most one incomplete trailing line between feeds. Multi-byte
    UTF-8 characters split across reads are reassembled.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """The incomplete trailing line, if any"""
        return self._buffer

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        """
        Append a chunk and return every complete, trimmed, non-empty line.

        Args:
            chunk: Raw bytes (or already-decoded text) from one read

        Returns:
            Complete lines in arrival order
        """
        if isinstance(chunk, bytes):
            self._buffer += self._decoder.decode(chunk)
        else:
            self._buffer += chunk

        # Split on newlines; the last piece may be incomplete
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        return [trimmed for trimmed in (line.strip() for line in lines) if trimmed]

    def flush(self) -> List[str]:
        """Return the trailing content once the stream has ended"""
        self._buffer += self._decoder.decode(b"", final=True)
        trimmed = self._buffer.strip()
        self._buffer = ""
        return [trimmed] if trimmed else []

    def reset(self) -> None:
        self._decoder.reset()
        self._buffer = ""


def strip_sse_prefix(line: str) -> str:
    """Accept ``data: {...}`` framing as well as bare JSON lines"""
    if line.startswith(SSE_DATA_PREFIX):
        return line[len(SSE_DATA_PREFIX):].strip()
    return line


async def _notify(on_error: Optional[StreamErrorHandler], error: VeniceStreamError) -> None:
    if on_error is None:
        return
    result = on_error(error)
    if inspect.isawaitable(result):
        await result


async def _settle(task: "asyncio.Future[Any]") -> None:
    """Cancel ``task`` if still pending and wait until it has finished."""
    if not task.done():
        task.cancel()
    await asyncio.wait({task})
    if not task.cancelled():
        # Mark any exception as retrieved; the read result is discarded
        task.exception()


async def _next_chunk(
    iterator: AsyncIterator[bytes],
    cancel_token: Optional[CancelToken],
) -> Optional[bytes]:
    """Read one chunk, or None if the token fired first. Raises StopAsyncIteration at end."""
    if cancel_token is None:
        return await iterator.__anext__()
    if cancel_token.cancelled:
        return None

    read = asyncio.ensure_future(iterator.__anext__())
    fired = asyncio.ensure_future(cancel_token.wait())
    try:
        await asyncio.wait({read, fired}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        fired.cancel()
        if not read.done() or cancel_token.cancelled:
            await _settle(read)

    if cancel_token.cancelled:
        return None
    return read.result()


async def parse_ndjson_stream(
    body: AsyncIterable[bytes],
    serializer: Any = None,
    on_error: Optional[StreamErrorHandler] = None,
    cancel_token: Optional[CancelToken] = None,
) -> AsyncGenerator[Any, None]:
    """
    Parse an NDJSON stream from an async iterable body.

    A line that is not valid JSON is reported to ``on_error`` as a
    VeniceStreamError and skipped; decoding carries on with the next line.
    Lines framed as SSE (``data: ...``) are unwrapped, and ``data: [DONE]``
    ends the stream.

    Args:
        body: Async iterable of bytes (httpx response stream).
        serializer: JSON serializer/deserializer.
        on_error: Called once per malformed line.
        cancel_token: When fired, reading stops and the generator ends quietly.

    Yields:
        Parsed JSON objects, in arrival order.

    Raises:
        VeniceStreamError: If reading the body fails.
        VeniceTimeoutError: If reading the body times out.
    """
    if serializer is None:
        serializer = DefaultSerializer()

    decoder = NdjsonDecoder()
    iterator = body.__aiter__()

    async def decode(line: str) -> Any:
        payload = strip_sse_prefix(line)
        try:
            return serializer.deserialize(payload)
        except ValueError as e:
            logger.warning(f"parse_ndjson_stream: skipping malformed line: {payload[:100]!r}")
            await _notify(on_error, create_stream_error("Malformed JSON line in stream", e, payload))
            return _SKIP

    try:
        while True:
            try:
                chunk = await _next_chunk(iterator, cancel_token)
            except StopAsyncIteration:
                break
            except VeniceError:
                raise
            except httpx.TimeoutException as e:
                raise create_from_transport_error(e, timed_out=True) from e
            except httpx.HTTPError as e:
                raise create_stream_error(f"Stream read failed: {e}", e) from e

            if chunk is None:
                logger.debug("parse_ndjson_stream: cancelled, stopping reader")
                return

            for line in decoder.feed(chunk):
                if strip_sse_prefix(line) == DONE_SENTINEL:
                    return
                parsed = await decode(line)
                if parsed is not _SKIP:
                    yield parsed
                if cancel_token is not None and cancel_token.cancelled:
                    return

        # Handle any remaining data (last line without trailing newline)
        for line in decoder.flush():
            if strip_sse_prefix(line) == DONE_SENTINEL:
                return
            parsed = await decode(line)
            if parsed is not _SKIP:
                yield parsed
    finally:
        decoder.reset()
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


def encode_ndjson(items: List[Any], serializer: Any = None) -> str:
    """
    Encode objects as NDJSON.

    Args:
        items: Items to encode.
        serializer: JSON serializer.

    Returns:
        NDJSON string, one object per line with a trailing newline.
    """
    if serializer is None:
        serializer = DefaultSerializer()

    return "".join(serializer.serialize(item) + "\n" for item in items)
