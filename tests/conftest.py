"""
Pytest configuration for http_handle tests.

This file contains shared fixtures and configuration
for all tests in the project.
"""

import gzip
import pytest
from typing import List, Optional, Tuple

from http_handle.handle import Handle
from http_handle.network.mock import MockNetworkBackend


def build_response(
    status: int = 200,
    body: bytes = b"",
    headers: Optional[List[Tuple[str, str]]] = None,
    reason: str = "OK",
    content_length: bool = True,
) -> bytes:
    """Serialize a raw HTTP/1.1 response for scripting mock connections."""
    lines = [f"HTTP/1.1 {status} {reason}"]
    for name, value in headers or []:
        lines.append(f"{name}: {value}")
    if content_length:
        lines.append(f"Content-Length: {len(body)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body


def gzip_response(body: bytes, status: int = 200) -> bytes:
    compressed = gzip.compress(body)
    return build_response(
        status,
        compressed,
        headers=[("Content-Type", "text/plain"), ("Content-Encoding", "gzip")],
    )


@pytest.fixture
def mock_backend():
    """Mock backend; example.com and the address 203.0.113.7 present
    certificates issued for example.com."""
    return MockNetworkBackend(
        certificates={"example.com": "example.com", "203.0.113.7": "example.com"},
        untrusted_hosts={"self-signed.example.com"},
    )


@pytest.fixture
def handle(mock_backend):
    """A handle whose connections go to the mock backend."""
    return Handle(backend=mock_backend)


@pytest.fixture
def sample_headers():
    """Sample headers for testing."""
    return [
        (b"Content-Type", b"application/json"),
        (b"Authorization", b"Bearer token123"),
        (b"User-Agent", b"http_handle/0.1.0"),
        (b"Accept", b"*/*"),
    ]


@pytest.fixture
def async_data_generator():
    """Create an async data generator for testing."""
    async def generator(data: List[bytes]):
        for chunk in data:
            yield chunk

    return generator
