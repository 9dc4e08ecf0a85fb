"""
Combinators over async event streams (chat completion chunks and the like).
"""
import asyncio
import inspect
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, List, Optional, TypeVar, Union

from ..errors import VeniceTimeoutError
from ..types import CancelToken

T = TypeVar("T")
R = TypeVar("R")


def _delta_content(chunk: Any) -> str:
    """``chunk.choices[0].delta.content`` of a chat completion chunk, or ''."""
    if not isinstance(chunk, dict):
        return ""
    choices = chunk.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else ""


async def _resolve(value: Union[R, Awaitable[R]]) -> R:
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


async def collect_stream(
    stream: AsyncIterable[Any],
    on_chunk: Optional[Callable[[Any, int], Any]] = None,
    cancel_token: Optional[CancelToken] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Concatenate the delta text of every chat completion chunk.

    Args:
        stream: Async iterable of decoded chunks
        on_chunk: Called with (chunk, index) for each chunk that carried text
        cancel_token: Abort collection when fired
        timeout: Overall limit in seconds

    Returns:
        The collected text

    Raises:
        asyncio.CancelledError: If the token fired before the stream ended
        VeniceTimeoutError: If ``timeout`` elapsed first
    """

    async def collect() -> str:
        parts: List[str] = []
        async for chunk in stream:
            if cancel_token is not None and cancel_token.cancelled:
                raise asyncio.CancelledError(cancel_token.reason)
            content = _delta_content(chunk)
            if content:
                parts.append(content)
                if on_chunk is not None:
                    await _resolve(on_chunk(chunk, len(parts) - 1))
        return "".join(parts)

    if timeout is None:
        return await collect()

    try:
        return await asyncio.wait_for(collect(), timeout)
    except asyncio.TimeoutError as e:
        raise VeniceTimeoutError(f"Stream collection timed out after {timeout}s") from e


async def map_stream(
    stream: AsyncIterable[T],
    mapper: Callable[[T, int], Union[R, Awaitable[R]]],
) -> AsyncIterator[R]:
    """Yield ``mapper(chunk, index)`` for each chunk."""
    index = 0
    async for chunk in stream:
        yield await _resolve(mapper(chunk, index))
        index += 1


async def filter_stream(
    stream: AsyncIterable[T],
    predicate: Callable[[T, int], Union[bool, Awaitable[bool]]],
) -> AsyncIterator[T]:
    """Yield the chunks for which ``predicate(chunk, index)`` holds."""
    index = 0
    async for chunk in stream:
        keep = await _resolve(predicate(chunk, index))
        index += 1
        if keep:
            yield chunk


async def take_stream(stream: AsyncIterable[T], count: int) -> AsyncIterator[T]:
    """Yield at most ``count`` chunks, then stop reading the source."""
    if count <= 0:
        return
    taken = 0
    async for chunk in stream:
        yield chunk
        taken += 1
        if taken >= count:
            break


async def tap_stream(
    stream: AsyncIterable[T],
    callback: Callable[[T, int], Any],
) -> AsyncIterator[T]:
    """Pass chunks through unchanged after calling ``callback(chunk, index)``."""
    index = 0
    async for chunk in stream:
        await _resolve(callback(chunk, index))
        index += 1
        yield chunk


async def buffer_stream(stream: AsyncIterable[T], size: int) -> AsyncIterator[List[T]]:
    """Yield lists of ``size`` chunks; the final list may be shorter."""
    if size < 1:
        raise ValueError("size must be at least 1")
    batch: List[T] = []
    async for chunk in stream:
        batch.append(chunk)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


async def stream_to_list(stream: AsyncIterable[T]) -> List[T]:
    """Drain a stream into a list."""
    return [chunk async for chunk in stream]


async def text_only_stream(stream: AsyncIterable[Any]) -> AsyncIterator[str]:
    """Yield only the non-empty delta text of chat completion chunks."""
    async for chunk in stream:
        content = _delta_content(chunk)
        if content:
            yield content


async def count_stream(stream: AsyncIterable[Any]) -> int:
    count = 0
    async for _ in stream:
        count += 1
    return count
