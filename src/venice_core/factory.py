"""
Factory functions for creating Venice clients.
"""
from typing import Any, List, Optional, Union

import httpx

from .config import ClientConfig, RateLimitConfig, TimeoutConfig, load_config_from_env
from .core.base_client import AsyncVeniceClient
from .middleware import Middleware


def create_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Union[TimeoutConfig, float, None] = None,
    headers: Optional[dict] = None,
    max_concurrent: Optional[int] = None,
    max_per_minute: Optional[int] = None,
    debug: bool = False,
    middlewares: Optional[List[Middleware]] = None,
    httpx_client: Optional[httpx.AsyncClient] = None,
) -> AsyncVeniceClient:
    """
    Create an AsyncVeniceClient from keyword settings.

    Example:
        client = create_client(api_key="...", max_concurrent=2)
    """
    rate_limit = RateLimitConfig()
    if max_concurrent is not None:
        rate_limit.max_concurrent = max_concurrent
    if max_per_minute is not None:
        rate_limit.max_per_minute = max_per_minute

    config = ClientConfig(
        api_key=api_key,
        timeout=timeout,
        headers=dict(headers or {}),
        rate_limit=rate_limit,
        debug=debug,
    )
    if base_url:
        config.base_url = base_url

    return AsyncVeniceClient(config, httpx_client=httpx_client, middlewares=middlewares)


def create_client_from_env(**overrides: Any) -> AsyncVeniceClient:
    """Create a client configured from VENICE_API_KEY, VENICE_BASE_URL and VENICE_TIMEOUT."""
    httpx_client = overrides.pop("httpx_client", None)
    middlewares = overrides.pop("middlewares", None)
    return AsyncVeniceClient(
        load_config_from_env(**overrides),
        httpx_client=httpx_client,
        middlewares=middlewares,
    )
