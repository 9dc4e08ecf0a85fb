"""
Tests for factory.py
"""
import pytest

from venice_core import AsyncVeniceClient, __version__, create_client, create_client_from_env
from venice_core.config import DEFAULT_BASE_URL


class TestCreateClient:
    """Tests for create_client."""

    @pytest.mark.asyncio
    async def test_defaults(self, mock_httpx_client):
        async with create_client(api_key="key", httpx_client=mock_httpx_client) as client:
            assert isinstance(client, AsyncVeniceClient)
            assert client.config.base_url == DEFAULT_BASE_URL
            assert client.rate_limiter.max_concurrent == 5
            assert client.rate_limiter.max_per_minute == 60

    @pytest.mark.asyncio
    async def test_overrides(self, mock_httpx_client):
        async with create_client(
            api_key="key",
            base_url="https://proxy.example.com/v1/",
            timeout=10,
            headers={"X-Team": "core"},
            max_concurrent=2,
            max_per_minute=10,
            httpx_client=mock_httpx_client,
        ) as client:
            assert client.config.base_url == "https://proxy.example.com/v1"
            assert client.config.timeout.read == 10
            assert client.config.headers["X-Team"] == "core"
            assert client.rate_limiter.max_concurrent == 2
            assert client.rate_limiter.max_per_minute == 10

    # Error Path: invalid limits are rejected up front
    def test_invalid_limits(self):
        with pytest.raises(ValueError):
            create_client(api_key="key", max_concurrent=0)


class TestCreateClientFromEnv:
    """Tests for create_client_from_env."""

    @pytest.mark.asyncio
    async def test_reads_environment(self, monkeypatch, mock_httpx_client):
        monkeypatch.setenv("VENICE_API_KEY", "env-key")
        monkeypatch.delenv("VENICE_BASE_URL", raising=False)
        monkeypatch.delenv("VENICE_TIMEOUT", raising=False)

        async with create_client_from_env(httpx_client=mock_httpx_client) as client:
            assert client.config.api_key == "env-key"


def test_version():
    assert __version__ == "0.1.0"
