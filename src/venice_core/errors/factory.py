"""
Classification of transport outcomes into the error taxonomy.
"""
import logging
import re
import time
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from .types import (
    KeyType,
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

logger = logging.getLogger("venice_core.errors")

VALIDATION_CODES = {
    "validation_error",
    "invalid_request",
    "invalid_request_error",
    "invalid_parameter",
    "invalid_parameters",
}

PERMISSION_CODES = {
    "permission_denied",
    "insufficient_permissions",
    "admin_key_required",
    "invalid_key_type",
    "unauthorized_key_type",
}

# Keys of a details mapping that describe the error itself rather than a field
_GENERIC_DETAIL_KEYS = {"_errors", "message", "error", "code", "status", "request_id", "requestId"}

_KEY_CLASS_PATTERN = re.compile(
    r"\b(?:requires?|required|needs?)\s+(?:an?\s+)?(admin|inference)\b[\w\s-]*\bkeys?\b"
    r"|\b(admin|inference)\b[\w\s-]*\bkeys?\s+(?:is\s+|are\s+)?required\b",
    re.IGNORECASE,
)
_MODEL_ID_PATTERN = re.compile(r"model\s+['\"`]?([\w./:@-]+)['\"`]?", re.IGNORECASE)


def parse_retry_after(value: Any) -> Optional[float]:
    """Parse a retry-after value given as seconds or as an HTTP-date."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return max(0.0, float(value))

    text = str(value).strip()
    try:
        return max(0.0, float(text))
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(text)
        return max(0.0, dt.timestamp() - time.time())
    except (ValueError, TypeError):
        pass

    return None


def extract_error_fields(body: Any) -> Tuple[Optional[str], Optional[str], Optional[Dict[str, Any]]]:
    """Pull ``(message, code, details)`` out of a structured error body.

    Accepts ``{error, code?, details?}`` where ``error`` may itself be an object
    carrying ``message``/``code``, a bare string body, or nothing.
    """
    if body is None:
        return None, None, None
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        text = body.strip()
        return (text or None), None, None
    if not isinstance(body, Mapping):
        return None, None, None

    message: Optional[str] = None
    code = body.get("code")
    error = body.get("error")
    if isinstance(error, Mapping):
        message = error.get("message")
        code = code or error.get("code") or error.get("type")
    elif error is not None:
        message = str(error)
    if not message and body.get("message"):
        message = str(body["message"])

    details = body.get("details")
    if details is not None and not isinstance(details, Mapping):
        details = {"issues": details}
    elif details is not None:
        details = dict(details)

    return message, (str(code) if code is not None else None), details


def _names_invalid_field(body: Any, code: Optional[str], details: Optional[Dict[str, Any]]) -> bool:
    if code and code.lower() in VALIDATION_CODES:
        return True
    if isinstance(body, Mapping) and (body.get("field") or body.get("param")):
        return True
    if not details:
        return False
    issues = details.get("issues")
    if isinstance(issues, list):
        return any(isinstance(i, Mapping) and (i.get("path") or i.get("field")) for i in issues)
    return any(key not in _GENERIC_DETAIL_KEYS for key in details)


def _key_class_mismatch(message: Optional[str], code: Optional[str]) -> Optional[KeyType]:
    """Return the required key class if the failure is about the kind of key."""
    text = message or ""
    match = _KEY_CLASS_PATTERN.search(text)
    if match:
        required = match.group(1) or match.group(2)
        return "ADMIN" if required.lower() == "admin" else "INFERENCE"
    if code and code.lower() in PERMISSION_CODES:
        return "INFERENCE" if "inference" in text.lower() else "ADMIN"
    return None


def _model_id_from(
    message: Optional[str],
    details: Optional[Dict[str, Any]],
    body: Any,
    request_body: Any,
) -> Optional[str]:
    for source in (details, body if isinstance(body, Mapping) else None):
        if source:
            for key in ("model", "model_id", "modelId"):
                if isinstance(source.get(key), str):
                    return source[key]
    if message:
        match = _MODEL_ID_PATTERN.search(message)
        if match and match.group(1).lower() not in {"not", "was", "is"}:
            return match.group(1)
    if isinstance(request_body, Mapping) and isinstance(request_body.get("model"), str):
        return request_body["model"]
    return None


def _suggestions_from(details: Optional[Dict[str, Any]], body: Any) -> List[str]:
    for source in (details, body if isinstance(body, Mapping) else None):
        if source and isinstance(source.get("suggestions"), list):
            return [str(s) for s in source["suggestions"]]
    return []


def _is_model_shaped(message: Optional[str], code: Optional[str], details: Optional[Dict[str, Any]]) -> bool:
    if code and "model" in code.lower():
        return True
    if message and "model" in message.lower():
        return True
    return bool(details) and any(k in details for k in ("model", "model_id", "modelId"))


def _retry_after_from(body: Any, details: Optional[Dict[str, Any]], headers: Optional[Mapping[str, str]]) -> Optional[float]:
    for source in (body if isinstance(body, Mapping) else None, details):
        if source:
            for key in ("retry_after", "retryAfter", "retry_after_seconds"):
                if key in source:
                    parsed = parse_retry_after(source[key])
                    if parsed is not None:
                        return parsed
    if headers:
        for name, value in headers.items():
            if name.lower() == "retry-after":
                return parse_retry_after(value)
    return None


def create_from_response(
    status: int,
    body: Any = None,
    headers: Optional[Mapping[str, str]] = None,
    request_path: Optional[str] = None,
    request_body: Any = None,
) -> VeniceError:
    """Map a non-2xx response to its error variant."""
    message, code, details = extract_error_fields(body)

    if status == 400:
        if _names_invalid_field(body, code, details):
            field = None
            if isinstance(body, Mapping):
                field = body.get("field") or body.get("param")
            return VeniceValidationError(message, details, field=field)
        return VeniceApiError(message, 400, details)

    if status in (401, 403):
        required = _key_class_mismatch(message, code)
        if required:
            current: Optional[KeyType] = None
            if details:
                raw = details.get("current_key_type") or details.get("currentKeyType")
                if isinstance(raw, str) and raw.upper() in ("INFERENCE", "ADMIN", "UNKNOWN"):
                    current = raw.upper()  # type: ignore[assignment]
            operation = f"{request_path}" if request_path else "This operation"
            return VenicePermissionError(operation, required, current, details, status=status)
        if status == 401:
            return VeniceAuthError(message, details)
        return VeniceApiError(message, status, details)

    if status == 402:
        return VenicePaymentRequiredError(message, details)

    if status == 404 and _is_model_shaped(message, code, details):
        model_id = _model_id_from(message, details, body, request_body)
        if model_id:
            return VeniceModelNotFoundError(model_id, _suggestions_from(details, body), details)

    if status == 429:
        return VeniceRateLimitError(message, _retry_after_from(body, details, headers), details)

    if status == 503:
        return VeniceCapacityError(message, details)

    return VeniceApiError(message or f"HTTP error {status}", status, details)


def create_from_transport_error(exc: BaseException, timed_out: bool = False) -> VeniceError:
    """Map a failure where no response arrived to Timeout or Network errors."""
    if isinstance(exc, VeniceError):
        return exc
    if timed_out or isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        error: VeniceError = VeniceTimeoutError(f"Request timed out: {exc}" if str(exc) else None)
    else:
        error = VeniceNetworkError(f"Network error: {exc}" if str(exc) else None)
    error.__cause__ = exc
    return error


def create_stream_error(
    message: str,
    cause: Optional[BaseException] = None,
    line: Optional[str] = None,
) -> VeniceStreamError:
    """Build a StreamError, keeping a short excerpt of the offending line."""
    excerpt = line[:100] if line is not None else None
    error = VeniceStreamError(message, line=excerpt)
    if cause is not None:
        error.__cause__ = cause
    return error


def classify(
    status: Optional[int] = None,
    body: Any = None,
    headers: Optional[Mapping[str, str]] = None,
    exc: Optional[BaseException] = None,
    timed_out: bool = False,
    request_path: Optional[str] = None,
    request_body: Any = None,
) -> VeniceError:
    """
    Classify a transport outcome into exactly one error variant.

    Args:
        status: HTTP status, or None when no response was received.
        body: Parsed (or raw text) error body.
        headers: Response headers, consulted for Retry-After.
        exc: Transport exception when no response was received.
        timed_out: True when the call was aborted by its timeout.
        request_path: Path of the failed request, used in permission messages.
        request_body: JSON body that was sent, used to recover a model id.

    Returns:
        A VeniceError subclass instance (not raised).
    """
    if status is None:
        if exc is None:
            exc = ConnectionError("No response received")
        return create_from_transport_error(exc, timed_out=timed_out)

    error = create_from_response(status, body, headers, request_path, request_body)
    logger.debug(f"classify: status={status} -> {type(error).__name__} ({error.code})")
    return error
