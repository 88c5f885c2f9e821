"""
Network backend components for http_handle.

This module provides the low-level networking abstractions:
backends that open TCP/TLS connections and the streams they return.
"""

from .backend import NetworkBackend
from .stream import NetworkStream
from .asyncio_backend import AsyncioNetworkBackend, AsyncioNetworkStream
from .mock import MockNetworkBackend, MockNetworkStream
from .utils import (
    configure_socket,
    create_ssl_context,
    normalize_host,
    resolve_host,
)

__all__ = [
    "NetworkBackend",
    "NetworkStream",
    "AsyncioNetworkBackend",
    "AsyncioNetworkStream",
    "MockNetworkBackend",
    "MockNetworkStream",
    "configure_socket",
    "create_ssl_context",
    "normalize_host",
    "resolve_host",
]
