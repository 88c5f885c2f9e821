"""
Network backend interface for http_handle.

This module defines the NetworkBackend interface that provides
abstractions for creating and managing network connections.
"""

import ssl
from abc import ABC, abstractmethod
from typing import Optional, List
from .stream import NetworkStream


class NetworkBackend(ABC):
    """
    Interface for network backend implementations.

    This interface defines the contract that all network backend implementations
    must follow. It provides methods for creating TCP and TLS connections
    in an asynchronous manner.
    """

    @abstractmethod
    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        keepalive: bool = True,
    ) -> NetworkStream:
        """
        Connect to a TCP endpoint.

        Args:
            host: The hostname or IP address to connect to.
            port: The port number to connect to.
            timeout: Optional timeout in seconds for the connection.
            keepalive: Whether to enable TCP keep-alive.

        Returns:
            A NetworkStream representing the TCP connection.

        Raises:
            OSError: If the connection fails.
            asyncio.TimeoutError: If the connection times out.
        """
        pass

    @abstractmethod
    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> NetworkStream:
        """
        Upgrade a TCP stream to TLS.

        Args:
            stream: The existing TCP NetworkStream to upgrade.
            host: The hostname sent as SNI and used for certificate
                  verification when the context checks hostnames.
            port: The port number (used for logging/debugging).
            timeout: Optional timeout in seconds for the TLS handshake.
            alpn_protocols: Optional list of ALPN protocols to negotiate.
            ssl_context: Context carrying the verification policy. A
                         default verifying context is used when omitted.

        Returns:
            A NetworkStream representing the TLS connection.

        Raises:
            ssl.SSLCertVerificationError: If the certificate is rejected.
            OSError: If the TLS handshake fails.
            asyncio.TimeoutError: If the TLS handshake times out.
        """
        pass
