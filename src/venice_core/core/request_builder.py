"""
Request builder utilities for venice_core.
"""
import logging
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlencode, urljoin, urlparse

from ..config import ResolvedConfig
from ..errors import VeniceAuthError
from ..types import QueryParams

logger = logging.getLogger("venice_core.request_builder")

AUTHORIZATION_HEADER = "Authorization"
REQUEST_ID_HEADER = "X-Request-ID"


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


def _encode_query_value(value: Union[str, int, float, bool]) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_url(
    base_url: str,
    path: str,
    query: Optional[QueryParams] = None,
) -> str:
    """Build full URL from base and path."""
    if path.startswith(("http://", "https://")):
        url = path
    elif path.startswith("/"):
        # Keep the base path (/api/v1) and append the new one
        parsed = urlparse(base_url)
        base_path = parsed.path.rstrip("/")
        url = f"{parsed.scheme}://{parsed.netloc}{base_path}{path}"
    elif path:
        if not base_url.endswith("/"):
            base_url = base_url + "/"
        url = urljoin(base_url, path)
    else:
        url = base_url

    if query:
        query_str = urlencode({k: _encode_query_value(v) for k, v in query.items() if v is not None})
        if query_str:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{query_str}"

    return url


def build_headers(
    config: ResolvedConfig,
    headers: Optional[Mapping[str, str]] = None,
    has_body: bool = False,
    request_id: Optional[str] = None,
    accept: str = "application/json",
) -> Dict[str, str]:
    """
    Merge default headers, per-call headers and the headers venice_core owns.

    Per-call headers override defaults. Authorization always reflects the
    snapshot's API key.

    Raises:
        VeniceAuthError: If the snapshot carries no API key
    """
    if not config.api_key:
        raise VeniceAuthError("API key is required. Pass api_key or set VENICE_API_KEY.")

    result = dict(config.headers)
    if headers:
        result.update(headers)

    # Set content-type for requests with body
    if has_body and not _has_header(result, "content-type"):
        result["Content-Type"] = config.content_type

    if not _has_header(result, "accept"):
        result["Accept"] = accept

    if request_id and not _has_header(result, REQUEST_ID_HEADER):
        result[REQUEST_ID_HEADER] = request_id

    for key in [k for k in result if k.lower() == "authorization"]:
        del result[key]
    result[AUTHORIZATION_HEADER] = f"Bearer {config.api_key}"

    logger.debug(f"build_headers: names={sorted(result)}, has_body={has_body}")
    return result


def build_body(
    json_data: Optional[Any] = None,
    body: Optional[Union[str, bytes]] = None,
    serializer: Optional[Any] = None,
) -> Optional[Union[str, bytes]]:
    """Build request body."""
    if body is not None:
        return body

    if json_data is not None and serializer:
        return serializer.serialize(json_data)

    return None
