"""
Error taxonomy for venice_core.

Every error leaving the package is one of eleven flat ``VeniceError``
subclasses, discriminated by ``kind``. Each carries a stable machine code and
an ordered, non-empty list of recovery hints so callers can pick a
remediation without per-status logic of their own.
"""
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Optional


class ErrorKind(str, Enum):
    """Discriminator of the closed error taxonomy"""
    VALIDATION = "validation"
    AUTH = "auth"
    API = "api"
    RATE_LIMIT = "rate_limit"
    PAYMENT_REQUIRED = "payment_required"
    CAPACITY = "capacity"
    MODEL_NOT_FOUND = "model_not_found"
    PERMISSION = "permission"
    NETWORK = "network"
    TIMEOUT = "timeout"
    STREAM = "stream"


KeyType = Literal["INFERENCE", "ADMIN", "UNKNOWN"]


@dataclass(frozen=True)
class RecoveryHint:
    """One remediation step attached to an error."""

    action: str
    """Machine-readable action name, e.g. ``wait_and_retry``"""

    description: str
    """Human description of the step"""

    automated: bool = False
    """True when calling code can perform the step without a human"""

    code: Optional[str] = None
    """Optional example snippet"""

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class VeniceError(Exception):
    """Base class of every error raised by venice_core."""

    kind: ClassVar[ErrorKind]
    code: ClassVar[str]
    default_message: ClassVar[str] = "Venice API error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.status = status
        self.details = details
        self.recovery_hints: List[RecoveryHint] = self._build_hints()

    def _build_hints(self) -> List[RecoveryHint]:
        raise NotImplementedError

    @property
    def automated_hints(self) -> List[RecoveryHint]:
        return [hint for hint in self.recovery_hints if hint.automated]

    def get_user_message(self) -> str:
        """Render the message followed by numbered recovery steps."""
        lines = [self.message, "", "To fix this:"]
        for index, hint in enumerate(self.recovery_hints, start=1):
            lines.append(f"  {index}. {hint.description}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serialisable view of the error."""
        result: Dict[str, Any] = {
            "name": type(self).__name__,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "recovery_hints": [hint.to_dict() for hint in self.recovery_hints],
        }
        if self.status is not None:
            result["status"] = self.status
        if self.details:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, status={self.status!r}, message={self.message!r})"


class VeniceValidationError(VeniceError):
    """The request was rejected because one or more fields are invalid."""

    kind = ErrorKind.VALIDATION
    code = "VALIDATION_ERROR"
    default_message = "Invalid request parameters"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        field: Optional[str] = None,
    ) -> None:
        self.field = field
        super().__init__(message, status=400, details=details)

    @property
    def field_errors(self) -> Dict[str, Any]:
        """Mapping of field name to its problem, when the server named any."""
        errors: Dict[str, Any] = {}
        if self.field:
            errors[self.field] = self.message
        if self.details:
            errors.update(
                {k: v for k, v in self.details.items() if not k.startswith("_")}
            )
        return errors

    def _build_hints(self) -> List[RecoveryHint]:
        hints = []
        fields = list(self.field_errors)
        if fields:
            hints.append(RecoveryHint(
                action="fix_fields",
                description=f"Correct the invalid field(s): {', '.join(fields)}",
            ))
        hints.append(RecoveryHint(
            action="check_parameters",
            description="Check parameter types and ranges against the API reference",
        ))
        return hints


class VeniceAuthError(VeniceError):
    """The API key is missing, malformed, expired or revoked."""

    kind = ErrorKind.AUTH
    code = "AUTH_ERROR"
    default_message = "Authentication failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status=401, details=details)

    def _build_hints(self) -> List[RecoveryHint]:
        return [
            RecoveryHint(
                action="check_api_key",
                description="Verify that VENICE_API_KEY is set and has not been revoked",
                code='export VENICE_API_KEY="your-api-key"',
            ),
            RecoveryHint(
                action="generate_new_key",
                description="Create a new API key at https://venice.ai/settings/api",
            ),
        ]


class VeniceApiError(VeniceError):
    """Generic API failure; always carries the raw status."""

    kind = ErrorKind.API
    code = "API_ERROR"
    default_message = "API request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        status: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, status=status, details=details)

    def _build_hints(self) -> List[RecoveryHint]:
        if self.status is not None and self.status >= 500:
            return [
                RecoveryHint(
                    action="retry_later",
                    description="The server failed to handle the request; retry after a short delay",
                    automated=True,
                ),
                RecoveryHint(
                    action="check_status",
                    description="Check https://status.venice.ai for ongoing incidents",
                ),
            ]
        return [
            RecoveryHint(
                action="inspect_details",
                description=f"Inspect the error details returned with HTTP {self.status}",
            ),
        ]


class VeniceRateLimitError(VeniceError):
    """Too many requests; the server asked the caller to slow down."""

    kind = ErrorKind.RATE_LIMIT
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Rate limit exceeded"

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after_seconds: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message, status=429, details=details)

    def _build_hints(self) -> List[RecoveryHint]:
        if self.retry_after_seconds is not None:
            wait = f"Wait {self.retry_after_seconds:g} seconds and retry the request"
        else:
            wait = "Wait and retry the request with exponential backoff"
        return [
            RecoveryHint(
                action="wait_and_retry",
                description=wait,
                automated=True,
                code="await asyncio.sleep(error.retry_after_seconds or 1)",
            ),
            RecoveryHint(
                action="reduce_concurrency",
                description="Lower RateLimitConfig.max_concurrent or max_per_minute on the client",
                automated=True,
            ),
            RecoveryHint(
                action="check_rate_limits",
                description="Review the rate limits of your account tier",
            ),
        ]

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.retry_after_seconds is not None:
            result["retry_after_seconds"] = self.retry_after_seconds
        return result


class VenicePaymentRequiredError(VeniceError):
    """The account has insufficient balance for the request."""

    kind = ErrorKind.PAYMENT_REQUIRED
    code = "PAYMENT_REQUIRED"
    default_message = "Insufficient USD or VCU balance to complete request"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status=402, details=details)

    def _build_hints(self) -> List[RecoveryHint]:
        return [
            RecoveryHint(
                action="add_credits",
                description="Add USD credits or stake VVV for VCU at https://venice.ai/settings/api",
            ),
            RecoveryHint(
                action="check_balance",
                description="Check the remaining balance of the account behind this API key",
            ),
        ]


class VeniceCapacityError(VeniceError):
    """Upstream inference capacity is exhausted."""

    kind = ErrorKind.CAPACITY
    code = "CAPACITY_EXCEEDED"
    default_message = "The model is at capacity. Please try again later."

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status=503, details=details)

    def _build_hints(self) -> List[RecoveryHint]:
        return [
            RecoveryHint(
                action="wait_and_retry",
                description="Retry after a short delay; capacity usually frees up quickly",
                automated=True,
            ),
            RecoveryHint(
                action="use_different_model",
                description="Switch to a less loaded model",
            ),
        ]


class VeniceModelNotFoundError(VeniceError):
    """The requested model id does not exist."""

    kind = ErrorKind.MODEL_NOT_FOUND
    code = "MODEL_NOT_FOUND"

    def __init__(
        self,
        model_id: str,
        suggestions: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.model_id = model_id
        self.suggestions = list(suggestions or [])
        message = f"Model '{model_id}' not found"
        if self.suggestions:
            message += ". Suggested alternatives: " + ", ".join(self.suggestions)
        super().__init__(message, status=404, details=details)

    def _build_hints(self) -> List[RecoveryHint]:
        hints = [
            RecoveryHint(
                action="list_models",
                description="List the available models with GET /models",
                code='models = await client.get("/models")',
            ),
            RecoveryHint(
                action="check_model_type",
                description="Use the endpoint that matches the model type (chat, image, embedding)",
            ),
        ]
        if self.suggestions:
            hints.append(RecoveryHint(
                action="try_suggestion",
                description=f"Try one of these similar models: {', '.join(self.suggestions)}",
            ))
        return hints

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["model_id"] = self.model_id
        if self.suggestions:
            result["suggestions"] = self.suggestions
        return result


class VenicePermissionError(VeniceError):
    """The operation needs a different class of API key than the one supplied."""

    kind = ErrorKind.PERMISSION
    code = "PERMISSION_DENIED"

    def __init__(
        self,
        operation: str,
        required_key_type: KeyType = "ADMIN",
        current_key_type: Optional[KeyType] = None,
        details: Optional[Dict[str, Any]] = None,
        status: int = 401,
    ) -> None:
        self.operation = operation
        self.required_key_type = required_key_type
        self.current_key_type = current_key_type
        message = f"{operation} requires an {required_key_type} API key"
        if current_key_type and current_key_type != "UNKNOWN":
            message += f" (currently using an {current_key_type} key)"
        super().__init__(message, status=status, details=details)

    def _build_hints(self) -> List[RecoveryHint]:
        return [
            RecoveryHint(
                action="get_correct_key",
                description=f"Create an {self.required_key_type} API key at https://venice.ai/settings/api",
            ),
            RecoveryHint(
                action="update_environment",
                description=f"Point VENICE_API_KEY at the {self.required_key_type} key",
                code=f'export VENICE_API_KEY="your-{self.required_key_type.lower()}-key-here"',
            ),
        ]

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["required_key_type"] = self.required_key_type
        if self.current_key_type:
            result["current_key_type"] = self.current_key_type
        return result


class VeniceNetworkError(VeniceError):
    """No response was received from the server."""

    kind = ErrorKind.NETWORK
    code = "NETWORK_ERROR"
    default_message = "Network error occurred"

    def _build_hints(self) -> List[RecoveryHint]:
        return [
            RecoveryHint(
                action="check_connection",
                description="Verify your internet connection is stable",
            ),
            RecoveryHint(
                action="retry_request",
                description="Retry the request after a short delay",
                automated=True,
            ),
            RecoveryHint(
                action="check_firewall",
                description="Ensure no firewall or proxy is blocking api.venice.ai",
            ),
        ]


class VeniceTimeoutError(VeniceError):
    """The request did not complete within its timeout."""

    kind = ErrorKind.TIMEOUT
    code = "TIMEOUT_ERROR"
    default_message = "Request timed out"

    def _build_hints(self) -> List[RecoveryHint]:
        return [
            RecoveryHint(
                action="retry_request",
                description="Retry the request; long generations can exceed the timeout under load",
                automated=True,
            ),
            RecoveryHint(
                action="increase_timeout",
                description="Raise the per-call timeout or ClientConfig.timeout",
                code="await client.post(path, json=body, timeout=120)",
            ),
            RecoveryHint(
                action="use_streaming",
                description="Use a streaming request so partial output arrives before the deadline",
            ),
        ]


class VeniceStreamError(VeniceError):
    """A streamed response could not be read or decoded."""

    kind = ErrorKind.STREAM
    code = "STREAM_ERROR"
    default_message = "Stream processing error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        line: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.line = line
        super().__init__(message, details=details)

    def _build_hints(self) -> List[RecoveryHint]:
        return [
            RecoveryHint(
                action="retry_stream",
                description="Restart the streaming request",
                automated=True,
            ),
            RecoveryHint(
                action="use_non_streaming",
                description="Fall back to a non-streaming request for this call",
            ),
        ]


ALL_ERROR_TYPES = (
    VeniceValidationError,
    VeniceAuthError,
    VeniceApiError,
    VeniceRateLimitError,
    VenicePaymentRequiredError,
    VeniceCapacityError,
    VeniceModelNotFoundError,
    VenicePermissionError,
    VeniceNetworkError,
    VeniceTimeoutError,
    VeniceStreamError,
)
