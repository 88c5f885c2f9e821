"""
HTTP/1.1 connection pool implementation.

Each handle owns one pool. Connections are keyed by endpoint and TLS
policy, so a connection verified under one policy is never reused for
a request made under another.
"""

import asyncio
import logging
import ssl
from typing import Dict, List, Optional, Set, Any, NamedTuple
from collections import defaultdict

from .http11 import HTTP11Connection
from .network import NetworkBackend, AsyncioNetworkBackend, create_ssl_context, normalize_host
from .exceptions import ConnectionError, SSLCertificateError, TimeoutError

logger = logging.getLogger(__name__)


class TLSSettings(NamedTuple):
    """Certificate verification policy for https connections."""
    verify_peer: bool = True
    verify_host: bool = True
    cafile: Optional[str] = None


class PoolKey(NamedTuple):
    scheme: str
    host: str
    port: int
    tls: Optional[TLSSettings]

    def __str__(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


class ConnectionPool:
    """
    HTTP/1.1 connection pool.

    Hands out idle keep-alive connections when one is available for the
    endpoint, otherwise opens a new one. Connections are checked out
    until ``release_connection`` is called.
    """

    DEFAULT_CONNECT_TIMEOUT = 10.0

    def __init__(
        self,
        backend: Optional[NetworkBackend] = None,
        max_connections: int = 10,
        max_connections_per_host: int = 6,
        keep_alive_timeout: float = 118.0,
        max_requests_per_connection: int = 100,
    ):
        """
        Initialize connection pool.

        Args:
            backend: Network backend to use for connections
            max_connections: Maximum total connections in pool
            max_connections_per_host: Maximum connections per host
            keep_alive_timeout: Seconds an idle connection stays reusable
            max_requests_per_connection: Max requests per connection
        """
        self._backend = backend or AsyncioNetworkBackend()
        self._max_connections = max_connections
        self._max_connections_per_host = max_connections_per_host
        self._keep_alive_timeout = keep_alive_timeout
        self._max_requests_per_connection = max_requests_per_connection

        self._connections: Dict[PoolKey, List[HTTP11Connection]] = defaultdict(list)
        self._in_use: Set[int] = set()
        self._ssl_contexts: Dict[TLSSettings, ssl.SSLContext] = {}
        self._lock = asyncio.Lock()

        # Metrics
        self._total_connections_created = 0
        self._total_connections_closed = 0
        self._total_requests_handled = 0

        self._closed = False

        logger.debug(f"Connection pool initialized: max={max_connections}, per_host={max_connections_per_host}")

    @property
    def backend(self) -> NetworkBackend:
        return self._backend

    async def get_connection(
        self,
        scheme: str,
        host: str,
        port: int,
        tls: Optional[TLSSettings] = None,
        connect_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        keepalive: bool = True,
        reuse: bool = True,
    ) -> HTTP11Connection:
        """
        Check out a connection for the specified endpoint.

        Args:
            scheme: "http" or "https"
            host: Target host
            port: Target port
            tls: Verification policy, used for https only
            connect_timeout: Timeout for TCP connect plus TLS handshake
            read_timeout: Read timeout for a newly created connection
            keepalive: Enable TCP keep-alive on a newly created connection
            reuse: Hand out an idle connection when one is available

        Returns:
            An HTTP/1.1 connection reserved for the caller

        Raises:
            ConnectionError: If no connection can be made
            SSLCertificateError: If the server certificate is rejected
            TimeoutError: If connecting times out
        """
        if self._closed:
            raise ConnectionError("Connection pool is closed")

        key = PoolKey(scheme, normalize_host(host), port, (tls or TLSSettings()) if scheme == "https" else None)

        async with self._lock:
            connections = self._connections[key]
            await self._drop_unusable(key, connections)

            idle = [
                conn for conn in connections
                if conn.is_idle and id(conn) not in self._in_use
            ]
            if reuse and idle:
                logger.debug(f"Reusing connection to {key}")
                self._in_use.add(id(idle[0]))
                return idle[0]

            if len(connections) >= self._max_connections_per_host:
                raise ConnectionError(
                    f"Maximum connections per host reached for {key}"
                )

            if self._get_total_connections() >= self._max_connections:
                await self._cleanup_idle_connections()

                if self._get_total_connections() >= self._max_connections:
                    raise ConnectionError("Maximum total connections reached")

        connection = await self._open_connection(key, connect_timeout, read_timeout, keepalive)

        async with self._lock:
            self._connections[key].append(connection)
            self._in_use.add(id(connection))
            self._total_connections_created += 1

        logger.debug(f"Created new connection to {key}")
        return connection

    async def _open_connection(
        self,
        key: PoolKey,
        connect_timeout: Optional[float],
        read_timeout: Optional[float],
        keepalive: bool = True,
    ) -> HTTP11Connection:
        timeout = connect_timeout or self.DEFAULT_CONNECT_TIMEOUT
        stream = None
        try:
            stream = await self._backend.connect_tcp(
                key.host, key.port, timeout=timeout, keepalive=keepalive
            )
            if key.tls is not None:
                stream = await self._backend.connect_tls(
                    stream,
                    key.host,
                    key.port,
                    timeout=timeout,
                    alpn_protocols=["http/1.1"],
                    ssl_context=self._ssl_context(key.tls),
                )
        except ssl.SSLCertVerificationError as e:
            logger.error(f"Certificate verification failed for {key}: {e}")
            await self._discard_stream(stream)
            raise SSLCertificateError(key.host, cause=e) from e
        except asyncio.TimeoutError as e:
            logger.error(f"Connecting to {key} timed out")
            await self._discard_stream(stream)
            raise TimeoutError(f"Connecting to {key} timed out", timeout=timeout) from e
        except OSError as e:
            logger.error(f"Failed to create connection to {key}: {e}")
            await self._discard_stream(stream)
            raise ConnectionError(f"Failed to connect to {key}: {e}", cause=e) from e

        return HTTP11Connection(
            stream=stream,
            read_timeout=read_timeout,
            keep_alive_timeout=self._keep_alive_timeout,
            max_requests=self._max_requests_per_connection,
        )

    async def _discard_stream(self, stream) -> None:
        if stream is not None:
            await stream.aclose()

    def _ssl_context(self, tls: TLSSettings) -> ssl.SSLContext:
        context = self._ssl_contexts.get(tls)
        if context is None:
            context = create_ssl_context(
                verify_peer=tls.verify_peer,
                verify_host=tls.verify_host,
                cafile=tls.cafile,
            )
            self._ssl_contexts[tls] = context
        return context

    async def release_connection(self, connection: HTTP11Connection) -> None:
        """
        Return a checked-out connection to the pool.

        Closed connections, and connections whose response was not fully
        consumed, are dropped.
        """
        async with self._lock:
            self._in_use.discard(id(connection))
            self._total_requests_handled += 1

            if connection.is_idle:
                logger.debug("Returned connection to pool")
                return

            if not connection.is_closed:
                await connection.close()

            for connections in self._connections.values():
                if connection in connections:
                    connections.remove(connection)
                    self._total_connections_closed += 1
                    logger.debug("Removed closed connection from pool")
                    break

    async def _drop_unusable(self, key: PoolKey, connections: List[HTTP11Connection]) -> None:
        for connection in list(connections):
            if id(connection) in self._in_use:
                continue
            if (connection.is_closed or connection.is_stale
                    or connection.has_expired(self._keep_alive_timeout)):
                connections.remove(connection)
                await connection.close()
                self._total_connections_closed += 1
                logger.debug(f"Dropped unusable connection to {key}")

    def _get_total_connections(self) -> int:
        """Get total number of connections in pool."""
        return sum(len(connections) for connections in self._connections.values())

    async def _cleanup_idle_connections(self) -> None:
        """Close idle connections from all hosts to make room."""
        for key, connections in self._connections.items():
            idle = [
                conn for conn in connections
                if id(conn) not in self._in_use and (conn.is_idle or conn.is_closed)
            ]

            for connection in idle:
                connections.remove(connection)
                await connection.close()
                self._total_connections_closed += 1

            if idle:
                logger.debug(f"Cleaned up {len(idle)} idle connections for {key}")

    async def close(self) -> None:
        """Close all connections. The pool cannot be used afterwards."""
        self._closed = True

        async with self._lock:
            for host_connections in self._connections.values():
                for connection in host_connections:
                    await connection.close()
                    self._total_connections_closed += 1

            self._connections.clear()
            self._in_use.clear()

        logger.debug(f"Connection pool closed. Closed {self._total_connections_closed} connections")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def idle_connections(self) -> int:
        return sum(
            1 for connections in self._connections.values()
            for conn in connections
            if conn.is_idle and id(conn) not in self._in_use
        )

    @property
    def metrics(self) -> Dict[str, Any]:
        """
        Get pool metrics.

        Returns:
            Dictionary with pool metrics
        """
        return {
            "total_connections": self._get_total_connections(),
            "idle_connections": self.idle_connections,
            "total_connections_created": self._total_connections_created,
            "total_connections_closed": self._total_connections_closed,
            "total_requests_handled": self._total_requests_handled,
            "connections_per_host": {
                str(key): len(connections)
                for key, connections in self._connections.items()
            },
            "max_connections": self._max_connections,
            "max_connections_per_host": self._max_connections_per_host,
            "keep_alive_timeout": self._keep_alive_timeout,
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
