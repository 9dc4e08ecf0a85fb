"""
Type definitions for venice_core.
"""
import asyncio
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Literal,
    Optional,
    Protocol,
    TypedDict,
    Union,
)


# HTTP methods
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

# How a successful body is handed back to the caller
ResponseType = Literal["json", "text", "bytes"]

QueryParams = Dict[str, Union[str, int, float, bool]]


class MetadataKeys:
    """Well-known keys of the middleware metadata map.

    Middleware may add any key it likes; these are owned by venice_core and
    keep a stable meaning across releases.
    """

    REQUEST_ID = "request_id"
    CACHE_HIT = "cache_hit"
    CACHED_DATA = "cached_data"
    ATTEMPT_NUMBER = "attempt_number"
    START_TIME = "start_time"
    END_TIME = "end_time"
    TOTAL_DURATION = "total_duration"


Metadata = Dict[str, Any]


class CancelToken:
    """Cancellation flag shared between a caller and an in-flight call.

    Example:
        token = CancelToken()
        task = asyncio.create_task(client.request("/models", cancel_token=token))
        token.cancel()
    """

    def __init__(self) -> None:
        # Created on first wait() so it binds to the loop that awaits it
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Request was cancelled") -> None:
        """Fire the token. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        if self._event is not None:
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def wait(self) -> None:
        """Block until the token is fired."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"


class FetchResponse(TypedDict):
    """Response from the client."""

    status: int
    status_text: str
    headers: Dict[str, str]
    data: Any
    ok: bool


class RequestOptions(TypedDict, total=False):
    """Request options threaded through the middleware chain."""

    method: HttpMethod
    headers: Dict[str, str]
    query: QueryParams
    json: Any
    body: Union[str, bytes]
    timeout: float
    response_type: ResponseType
    cancel_token: CancelToken


class Serializer(Protocol):
    """Serializer protocol for custom JSON handling."""

    def serialize(self, data: Any) -> str:
        """Serialize data to string."""
        ...

    def deserialize(self, text: str) -> Any:
        """Deserialize string to data."""
        ...


class ByteStream(Protocol):
    """Anything that can hand out its body as async byte chunks (httpx.Response)."""

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        ...

    async def aclose(self) -> None:
        ...
