"""
Mock network implementations for testing.

This module provides mock implementations of NetworkStream and NetworkBackend
that can be used for unit testing without requiring actual network connections.
"""

import ssl
from collections import defaultdict
from typing import Optional, Dict, Any, List, Set, Tuple
from .stream import NetworkStream
from .backend import NetworkBackend


class MockNetworkStream(NetworkStream):
    """
    Mock network stream for testing.

    This implementation simulates a network stream in memory,
    allowing tests to verify network behavior without actual I/O.
    """

    def __init__(self, data: bytes = b""):
        """
        Initialize the mock stream.

        Args:
            data: Initial data to be available for reading.
        """
        self._data = data
        self._position = 0
        self._closed = False
        self._extra_info: Dict[str, Any] = {}
        self._write_buffer: List[bytes] = []
        self._eof = False

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        """
        Read data from the mock stream.

        Raises:
            RuntimeError: If the stream is closed.
        """
        if self._closed:
            raise RuntimeError("Stream is closed")

        if self._position >= len(self._data):
            return b""

        if max_bytes is None:
            result = self._data[self._position:]
            self._position = len(self._data)
        else:
            end = min(self._position + max_bytes, len(self._data))
            result = self._data[self._position:end]
            self._position = end

        return result

    async def write(self, data: bytes) -> None:
        """
        Write data to the mock stream.

        Raises:
            RuntimeError: If the stream is closed.
        """
        if self._closed:
            raise RuntimeError("Stream is closed")

        self._write_buffer.append(data)

    async def aclose(self) -> None:
        """Close the mock stream."""
        self._closed = True

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._extra_info.get(name)

    @property
    def is_closed(self) -> bool:
        """Check if the mock stream is closed."""
        return self._closed

    @property
    def at_eof(self) -> bool:
        return self._eof and self._position >= len(self._data)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def written_data(self) -> bytes:
        """Get all data that was written to the stream."""
        return b"".join(self._write_buffer)

    def set_extra_info(self, name: str, value: Any) -> None:
        self._extra_info[name] = value

    def add_data(self, data: bytes) -> None:
        """
        Add data to be available for reading.

        Args:
            data: The data to add.
        """
        self._data += data

    def feed_eof(self) -> None:
        """Simulate the peer closing its side once buffered data is read."""
        self._eof = True


class MockNetworkBackend(NetworkBackend):
    """
    Mock network backend for testing.

    Responses are scripted per (host, port) with ``add_response``.
    Scripted bytes go to the newest open connection for that endpoint,
    or wait for the next ``connect_tcp`` when there is none.

    TLS upgrades honour the verification policy of the SSL context they
    are given: ``certificates`` maps a host to the name its certificate
    is issued for, and hosts in ``untrusted_hosts`` present a chain that
    fails peer verification.
    """

    def __init__(
        self,
        certificates: Optional[Dict[str, str]] = None,
        untrusted_hosts: Optional[Set[str]] = None,
        refused: Optional[Set[Tuple[str, int]]] = None,
    ):
        self._connections: Dict[Tuple[str, int], List[MockNetworkStream]] = defaultdict(list)
        self._pending: Dict[Tuple[str, int], bytes] = defaultdict(bytes)
        self._certificates = dict(certificates or {})
        self._untrusted_hosts = set(untrusted_hosts or ())
        self._refused = set(refused or ())
        self._connection_count = 0
        self._tls_handshakes = 0

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        keepalive: bool = True,
    ) -> MockNetworkStream:
        """
        Create a mock TCP connection carrying the pending scripted data.

        Raises:
            ConnectionRefusedError: For endpoints listed in ``refused``.
        """
        key = (host, port)
        if key in self._refused:
            raise ConnectionRefusedError(f"Connection refused: {host}:{port}")

        stream = MockNetworkStream(self._pending.pop(key, b""))
        stream.set_extra_info("socket", self._connection_count)
        stream.set_extra_info("peername", (host, port))
        stream.set_extra_info("sockname", ("127.0.0.1", 12345))
        stream.set_extra_info("keepalive", keepalive)
        self._connections[key].append(stream)
        self._connection_count += 1
        return stream

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
        Simulate a TLS handshake on an existing mock stream.

        Raises:
            ssl.SSLCertVerificationError: When the context's policy
                rejects the host's simulated certificate.
        """
        context = ssl_context or ssl.create_default_context()
        issued_for = self._certificates.get(host, host)

        if context.verify_mode == ssl.CERT_REQUIRED and host in self._untrusted_hosts:
            raise ssl.SSLCertVerificationError(
                1,
                "[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed: "
                "self-signed certificate",
            )

        if context.check_hostname and issued_for != host:
            raise ssl.SSLCertVerificationError(
                1,
                "[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed: "
                f"Hostname mismatch, certificate is not valid for '{host}'.",
            )

        if not isinstance(stream, MockNetworkStream):
            raise TypeError("MockNetworkBackend can only upgrade its own streams")

        stream.set_extra_info("ssl_object", True)
        stream.set_extra_info("peercert", {"subject": ((("commonName", issued_for),),)})
        stream.set_extra_info(
            "selected_alpn_protocol",
            alpn_protocols[0] if alpn_protocols else "http/1.1",
        )
        self._tls_handshakes += 1
        return stream

    def add_response(self, host: str, port: int, data: bytes, new_connection: bool = False) -> None:
        """
        Script raw response bytes for an endpoint.

        Args:
            host: The hostname.
            port: The port number.
            data: Raw HTTP response bytes.
            new_connection: Hold the bytes for the next connection even
                when one is already open.
        """
        key = (host, port)
        open_streams = [s for s in self._connections.get(key, []) if not s.is_closed]
        if open_streams and not new_connection:
            open_streams[-1].add_data(data)
        else:
            self._pending[key] += data

    def get_connections(self, host: str, port: int) -> List[MockNetworkStream]:
        """Get every stream opened to an endpoint, oldest first."""
        return list(self._connections.get((host, port), []))

    def written_data(self, host: str, port: int) -> bytes:
        """Concatenate everything the client wrote to an endpoint."""
        return b"".join(s.written_data for s in self.get_connections(host, port))

    @property
    def connection_count(self) -> int:
        return self._connection_count

    @property
    def tls_handshakes(self) -> int:
        return self._tls_handshakes

    def reset(self) -> None:
        """Reset all mock connections."""
        self._connections.clear()
        self._pending.clear()
        self._connection_count = 0
        self._tls_handshakes = 0
