"""
Configuration for venice_core.
"""
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlparse
import json
import logging
import os

logger = logging.getLogger("venice_core.config")

DEFAULT_BASE_URL = "https://api.venice.ai/api/v1"
DEFAULT_CONTENT_TYPE = "application/json"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_CONCURRENT = 5
DEFAULT_MAX_PER_MINUTE = 60


def _mask_sensitive(value: Optional[str], visible_chars: int = 10) -> str:
    """Mask sensitive value for safe logging."""
    if value is None:
        return "<None>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


@dataclass
class TimeoutConfig:
    """Timeout configuration in seconds."""

    connect: float = 5.0
    read: float = DEFAULT_TIMEOUT_SECONDS
    write: float = 10.0


@dataclass
class RateLimitConfig:
    """Concurrency and request-rate limits shared by all calls on one client."""

    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    """Maximum number of admitted, un-released requests. Default: 5"""

    max_per_minute: int = DEFAULT_MAX_PER_MINUTE
    """Maximum admissions in any rolling window. Default: 60"""

    window_seconds: float = 60.0
    """Length of the rolling window. Default: 60"""


@dataclass
class ClientConfig:
    """Client configuration as supplied by the caller."""

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout: Union[TimeoutConfig, float, None] = None
    headers: Dict[str, str] = field(default_factory=dict)
    rate_limit: Optional[RateLimitConfig] = None
    content_type: str = DEFAULT_CONTENT_TYPE
    debug: bool = False

    def __repr__(self) -> str:
        """Safe repr that masks the API key."""
        return (
            f"ClientConfig(api_key={_mask_sensitive(self.api_key)!r}, "
            f"base_url={self.base_url!r}, timeout={self.timeout!r}, "
            f"headers={list(self.headers)!r}, rate_limit={self.rate_limit!r}, "
            f"debug={self.debug!r})"
        )


class DefaultSerializer:
    """Default JSON serializer."""

    def serialize(self, data: Any) -> str:
        """Serialize data to JSON string."""
        return json.dumps(data)

    def deserialize(self, text: str) -> Any:
        """Deserialize JSON string to data."""
        return json.loads(text)


default_serializer = DefaultSerializer()


@dataclass(frozen=True)
class ResolvedConfig:
    """Resolved, immutable configuration snapshot.

    Every call captures the snapshot current at its start; updating a header
    or the API key swaps in a new snapshot and never touches one in use.
    """

    base_url: str
    timeout: TimeoutConfig
    headers: Mapping[str, str]
    content_type: str
    api_key: Optional[str]
    rate_limit: RateLimitConfig
    debug: bool = False
    serializer: DefaultSerializer = default_serializer

    def with_header(self, name: str, value: str) -> "ResolvedConfig":
        """Return a new snapshot with ``name`` set in the default headers."""
        headers = dict(self.headers)
        headers[name] = value
        return replace(self, headers=MappingProxyType(headers))

    def with_api_key(self, api_key: str) -> "ResolvedConfig":
        """Return a new snapshot authenticating with ``api_key``."""
        if not api_key:
            raise ValueError("api_key cannot be empty")
        return replace(self, api_key=api_key)

    def __repr__(self) -> str:
        return (
            f"ResolvedConfig(base_url={self.base_url!r}, "
            f"api_key={_mask_sensitive(self.api_key)!r}, "
            f"headers={list(self.headers)!r})"
        )


def normalize_timeout(timeout: Union[TimeoutConfig, float, None]) -> TimeoutConfig:
    """Normalize timeout config."""
    if timeout is None:
        return TimeoutConfig()
    if isinstance(timeout, (int, float)):
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        return TimeoutConfig(connect=timeout, read=timeout, write=timeout)
    return timeout


def validate_config(config: ClientConfig) -> None:
    """Validate client configuration."""
    if not config.base_url:
        raise ValueError("base_url is required")

    parsed = urlparse(config.base_url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid base_url: {config.base_url}")

    if config.api_key and config.api_key.startswith(("http://", "https://")):
        # Common misconfiguration: base URL pasted into the key slot
        logger.error(
            "ClientConfig: api_key appears to be a URL (starts with http). "
            "Expected an API key, got: %s...",
            config.api_key[:30],
        )

    if config.rate_limit:
        if config.rate_limit.max_concurrent < 1:
            raise ValueError("rate_limit.max_concurrent must be at least 1")
        if config.rate_limit.max_per_minute < 1:
            raise ValueError("rate_limit.max_per_minute must be at least 1")
        if config.rate_limit.window_seconds <= 0:
            raise ValueError("rate_limit.window_seconds must be positive")


def resolve_config(config: ClientConfig) -> ResolvedConfig:
    """Resolve client configuration with defaults."""
    validate_config(config)

    return ResolvedConfig(
        base_url=config.base_url.rstrip("/"),
        timeout=normalize_timeout(config.timeout),
        headers=MappingProxyType(dict(config.headers)),
        content_type=config.content_type or DEFAULT_CONTENT_TYPE,
        api_key=config.api_key,
        rate_limit=config.rate_limit or RateLimitConfig(),
        debug=config.debug,
    )


def load_config_from_env(**overrides: Any) -> ClientConfig:
    """Build a ClientConfig from VENICE_* environment variables.

    Recognised variables: VENICE_API_KEY, VENICE_BASE_URL, VENICE_TIMEOUT
    (seconds). Keyword overrides win over the environment.
    """
    values: Dict[str, Any] = {}

    api_key = os.environ.get("VENICE_API_KEY")
    if api_key:
        values["api_key"] = api_key

    base_url = os.environ.get("VENICE_BASE_URL")
    if base_url:
        values["base_url"] = base_url

    timeout = os.environ.get("VENICE_TIMEOUT")
    if timeout:
        try:
            values["timeout"] = float(timeout)
        except ValueError as e:
            raise ValueError(f"VENICE_TIMEOUT must be a number, got {timeout!r}") from e

    values.update(overrides)
    return ClientConfig(**values)


def is_ssl_verify_disabled_by_env() -> bool:
    """True when SSL_CERT_VERIFY=0 or NODE_TLS_REJECT_UNAUTHORIZED=0 is set."""
    node_tls = os.environ.get("NODE_TLS_REJECT_UNAUTHORIZED", "")
    ssl_cert_verify = os.environ.get("SSL_CERT_VERIFY", "")
    return node_tls == "0" or ssl_cert_verify == "0"
