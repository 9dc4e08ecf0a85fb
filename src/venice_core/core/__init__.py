"""
Core client for venice_core.
"""
from .base_client import AsyncVeniceClient
from .request_builder import build_body, build_headers, build_url

__all__ = [
    "AsyncVeniceClient",
    "build_body",
    "build_headers",
    "build_url",
]
