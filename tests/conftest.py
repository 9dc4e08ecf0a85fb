"""
Shared fixtures for venice_core tests.
"""
import httpx
import pytest
import respx

from venice_core.config import ClientConfig, RateLimitConfig

BASE_URL = "https://api.venice.ai/api/v1"


@pytest.fixture
def client_config():
    """ClientConfig pointing at the default base URL with a test key."""
    return ClientConfig(
        api_key="test-api-key-1234567890",
        rate_limit=RateLimitConfig(max_concurrent=5, max_per_minute=60),
    )


@pytest.fixture
def router():
    """respx router used as a transport, without patching httpx globally."""
    return respx.MockRouter(base_url=BASE_URL, assert_all_called=False)


@pytest.fixture
def mock_httpx_client(router):
    """httpx.AsyncClient whose transport is the respx router."""
    return httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler))
