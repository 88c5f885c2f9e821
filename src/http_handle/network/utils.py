"""
Network utilities for http_handle.

This module provides utility functions for common network operations
including socket tuning, SSL context setup and name resolution.
"""

import asyncio
import logging
import socket
import ssl
from typing import Any, List, Optional

import certifi

logger = logging.getLogger(__name__)


def configure_socket(sock: Any, keepalive: bool = True) -> None:
    """
    Apply low-latency and keep-alive options to a connected socket.

    Args:
        sock: Connected TCP socket
        keepalive: Whether to enable TCP keep-alive
    """
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

    if not keepalive:
        return

    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    # Platform-specific keep-alive settings
    if hasattr(socket, 'TCP_KEEPIDLE'):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60)
    if hasattr(socket, 'TCP_KEEPINTVL'):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 10)
    if hasattr(socket, 'TCP_KEEPCNT'):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 6)


def create_ssl_context(
    verify_peer: bool = True,
    verify_host: bool = True,
    cafile: Optional[str] = None,
    alpn_protocols: Optional[List[str]] = None,
) -> ssl.SSLContext:
    """
    Create an SSL context for client connections.

    Peer verification checks the certificate chain against the CA
    bundle; host verification checks that the certificate names the
    requested host. Host verification is meaningless without peer
    verification and is dropped with it.

    Args:
        verify_peer: Verify the certificate chain
        verify_host: Verify the certificate matches the host
        cafile: CA bundle path, defaults to the certifi bundle
        alpn_protocols: Optional list of ALPN protocols to negotiate

    Returns:
        Configured SSL context
    """
    context = ssl.create_default_context(cafile=cafile or certifi.where())

    # check_hostname must be cleared before verify_mode can drop to CERT_NONE
    context.check_hostname = verify_peer and verify_host
    context.verify_mode = ssl.CERT_REQUIRED if verify_peer else ssl.CERT_NONE

    if not verify_peer:
        logger.warning("TLS peer verification disabled")
    elif not verify_host:
        logger.debug("TLS host name verification disabled")

    if alpn_protocols:
        context.set_alpn_protocols(alpn_protocols)

    context.options |= ssl.OP_NO_COMPRESSION

    # Disable legacy protocols
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    return context


def normalize_host(host: str) -> str:
    """
    Normalize hostname for consistent comparison.

    Args:
        host: Hostname to normalize

    Returns:
        Normalized hostname
    """
    # Remove trailing dots (common in DNS)
    return host.rstrip('.').lower()


async def resolve_host(host: str, ipv4_only: bool = False) -> List[str]:
    """
    Resolve a host name to its addresses, in resolver order.

    Args:
        host: Host name or literal address
        ipv4_only: Only return IPv4 addresses

    Returns:
        Unique addresses

    Raises:
        socket.gaierror: If the name cannot be resolved
    """
    family = socket.AF_INET if ipv4_only else socket.AF_UNSPEC
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, family=family, type=socket.SOCK_STREAM)

    addresses: List[str] = []
    for _family, _type, _proto, _canonname, sockaddr in infos:
        if sockaddr[0] not in addresses:
            addresses.append(sockaddr[0])
    return addresses
