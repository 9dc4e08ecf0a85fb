"""
Typed, self-describing errors raised by venice_core.
"""
from .types import (
    ALL_ERROR_TYPES,
    ErrorKind,
    KeyType,
    RecoveryHint,
    VeniceApiError,
    VeniceAuthError,
    VeniceCapacityError,
    VeniceError,
    VeniceModelNotFoundError,
    VeniceNetworkError,
    VenicePaymentRequiredError,
    VenicePermissionError,
    VeniceRateLimitError,
    VeniceStreamError,
    VeniceTimeoutError,
    VeniceValidationError,
)
from .factory import (
    classify,
    create_from_response,
    create_from_transport_error,
    create_stream_error,
    extract_error_fields,
    parse_retry_after,
)

__all__ = [
    # Types
    "ALL_ERROR_TYPES",
    "ErrorKind",
    "KeyType",
    "RecoveryHint",
    "VeniceError",
    "VeniceValidationError",
    "VeniceAuthError",
    "VeniceApiError",
    "VeniceRateLimitError",
    "VenicePaymentRequiredError",
    "VeniceCapacityError",
    "VeniceModelNotFoundError",
    "VenicePermissionError",
    "VeniceNetworkError",
    "VeniceTimeoutError",
    "VeniceStreamError",
    # Factory
    "classify",
    "create_from_response",
    "create_from_transport_error",
    "create_stream_error",
    "extract_error_fields",
    "parse_retry_after",
]
