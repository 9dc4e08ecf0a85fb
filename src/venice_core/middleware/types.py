"""
Type definitions for the middleware pipeline
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from ..errors import VeniceError
from ..types import FetchResponse, Metadata, RequestOptions


@dataclass
class MiddlewareRequestContext:
    """Context for request-phase hooks"""

    path: str
    """Request path; hooks may rewrite it"""

    options: RequestOptions
    """Request options (method, headers, json, ...); hooks may mutate them"""

    timestamp: int
    """Epoch milliseconds when the request phase started"""

    metadata: Metadata = field(default_factory=dict)
    """Open map shared with the response and error phases"""


@dataclass
class MiddlewareResponseContext:
    """Context for response-phase hooks"""

    path: str
    options: RequestOptions
    response: FetchResponse
    timestamp: int
    """Epoch milliseconds when the request started"""

    duration: int
    """Elapsed milliseconds since ``timestamp``"""

    metadata: Metadata = field(default_factory=dict)


@dataclass
class MiddlewareErrorContext:
    """Context for error-phase hooks"""

    path: str
    options: RequestOptions
    error: VeniceError
    timestamp: int
    duration: int
    metadata: Metadata = field(default_factory=dict)


MaybeAwaitable = Union[Any, Awaitable[Any]]

RequestHook = Callable[[MiddlewareRequestContext], MaybeAwaitable]
ResponseHook = Callable[[MiddlewareResponseContext], MaybeAwaitable]
ErrorHook = Callable[[MiddlewareErrorContext], MaybeAwaitable]


@dataclass
class Middleware:
    """A named bundle of optional hooks run around every call.

    Hooks may be plain functions or coroutine functions. Request and response
    hooks return the (possibly replaced) context; returning None keeps the
    context that was passed in, so hooks that only mutate in place may omit
    the return.
    """

    name: Optional[str] = None
    on_request: Optional[RequestHook] = None
    on_response: Optional[ResponseHook] = None
    on_error: Optional[ErrorHook] = None
