"""
Tests for the HTTP/1.1 connection implementation.

Covers request/response cycles, deferred body streaming, keep-alive
reuse and error handling over in-memory mock streams.
"""

import pytest
import asyncio
import time

from http_handle.http11 import HTTP11Connection, ConnectionState
from http_handle.http_primitives import Request
from http_handle.network.mock import MockNetworkStream
from http_handle.streams import RequestStream, ResponseStream
from http_handle.exceptions import ConnectionError, ProtocolError, TimeoutError


def get_request(target: str = "/", **kwargs) -> Request:
    return Request.create(
        "GET",
        f"http://example.com{target}",
        headers=[(b"Host", b"example.com")],
        **kwargs,
    )


class TestHTTP11Connection:
    """Request/response cycles over a single connection."""

    @pytest.fixture
    def mock_stream(self):
        """Create a mock network stream."""
        return MockNetworkStream()

    @pytest.fixture
    def connection(self, mock_stream):
        """Create an HTTP/1.1 connection."""
        return HTTP11Connection(mock_stream)

    def test_initial_state(self, connection) -> None:
        assert connection._state == ConnectionState.NEW
        assert connection.is_available
        assert not connection.is_idle
        assert not connection.is_closed

    @pytest.mark.asyncio
    async def test_simple_get_request_cycle(self, connection, mock_stream) -> None:
        """The head is returned first; the body arrives through the stream."""
        mock_stream.add_data(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Length: 11\r\n"
            b"Server: httpbin.org\r\n"
            b"\r\n"
            b"Hello World"
        )

        response = await connection.handle_request(get_request())

        assert response.status_code == 200
        assert response.reason == b"OK"
        assert response.get_header(b"Server") == b"httpbin.org"
        assert isinstance(response.stream, ResponseStream)
        assert connection._state == ConnectionState.ACTIVE

        assert await response.stream.aread() == b"Hello World"

        written_data = mock_stream.written_data
        assert b"GET / HTTP/1.1" in written_data
        assert b"Host: example.com" in written_data
        assert connection.is_idle
        assert not connection.is_closed

    @pytest.mark.asyncio
    async def test_post_request_with_body(self, connection, mock_stream) -> None:
        mock_stream.add_data(b"HTTP/1.1 201 Created\r\nContent-Length: 0\r\n\r\n")
        body = b'{"message": "Hello, World!"}'
        request = Request.create(
            "POST",
            "http://example.com/items",
            headers=[
                (b"Host", b"example.com"),
                (b"Content-Type", b"application/json"),
                (b"Content-Length", str(len(body)).encode()),
            ],
            stream=RequestStream(body),
        )

        response = await connection.handle_request(request)
        await response.stream.aread()

        assert response.status_code == 201
        written_data = mock_stream.written_data
        assert written_data.startswith(b"POST /items HTTP/1.1\r\n")
        assert written_data.endswith(body)

    @pytest.mark.asyncio
    async def test_chunked_response(self, connection, mock_stream) -> None:
        mock_stream.add_data(
            b"HTTP/1.1 200 OK\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n"
            b"5\r\nHello\r\n"
            b"6\r\n World\r\n"
            b"0\r\n\r\n"
        )

        response = await connection.handle_request(get_request())

        assert response.stream.chunked
        assert await response.stream.aread() == b"Hello World"
        assert connection.is_idle

    @pytest.mark.asyncio
    async def test_informational_response_skipped(self, connection, mock_stream) -> None:
        mock_stream.add_data(
            b"HTTP/1.1 100 Continue\r\n\r\n"
            b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nok"
        )

        response = await connection.handle_request(get_request())

        assert response.status_code == 200
        assert await response.stream.aread() == b"ok"

    @pytest.mark.asyncio
    async def test_keep_alive_reuse(self, connection, mock_stream) -> None:
        mock_stream.add_data(
            b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nfirst"
            b"HTTP/1.1 200 OK\r\nContent-Length: 6\r\n\r\nsecond"
        )

        first = await connection.handle_request(get_request("/1"))
        assert await first.stream.aread() == b"first"
        second = await connection.handle_request(get_request("/2"))
        assert await second.stream.aread() == b"second"

        assert connection.metrics["request_count"] == 2
        assert connection.is_idle
        assert b"GET /2 HTTP/1.1" in mock_stream.written_data

    @pytest.mark.asyncio
    async def test_connection_close_header(self, connection, mock_stream) -> None:
        mock_stream.add_data(
            b"HTTP/1.1 200 OK\r\nConnection: close\r\nContent-Length: 2\r\n\r\nok"
        )

        response = await connection.handle_request(get_request())
        await response.stream.aread()

        assert connection.is_closed
        assert mock_stream.is_closed

    @pytest.mark.asyncio
    async def test_close_delimited_body(self, connection, mock_stream) -> None:
        mock_stream.add_data(b"HTTP/1.1 200 OK\r\n\r\nuntil the end")

        response = await connection.handle_request(get_request())

        assert await response.stream.aread() == b"until the end"
        assert connection.is_closed
        assert mock_stream.is_closed

    @pytest.mark.asyncio
    async def test_eof_before_response_is_not_started(self, connection, mock_stream) -> None:
        with pytest.raises(ProtocolError, match="closed unexpectedly"):
            await connection.handle_request(get_request())
        assert not connection.response_started

    @pytest.mark.asyncio
    async def test_truncated_head_is_started(self, connection, mock_stream) -> None:
        mock_stream.add_data(b"HTTP/1.1 200 OK\r\nContent-Le")

        with pytest.raises(ProtocolError):
            await connection.handle_request(get_request())
        assert connection.response_started

    @pytest.mark.asyncio
    async def test_max_requests_closes_connection(self, mock_stream) -> None:
        connection = HTTP11Connection(mock_stream, max_requests=1)
        mock_stream.add_data(b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n")

        response = await connection.handle_request(get_request())
        await response.stream.aread()

        assert connection.is_closed

    @pytest.mark.asyncio
    async def test_busy_connection(self, connection, mock_stream) -> None:
        mock_stream.add_data(b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nok")

        await connection.handle_request(get_request())

        with pytest.raises(ConnectionError, match="Connection is busy"):
            await connection.handle_request(get_request())

    @pytest.mark.asyncio
    async def test_closed_connection(self, connection) -> None:
        await connection.close()

        with pytest.raises(ConnectionError, match="Connection is closed"):
            await connection.handle_request(get_request())

    @pytest.mark.asyncio
    async def test_server_closes_before_response(self, connection, mock_stream) -> None:
        with pytest.raises(ProtocolError, match="Connection closed unexpectedly"):
            await connection.handle_request(get_request())

        assert connection.is_closed
        assert connection.metrics["errors_count"] == 1

    @pytest.mark.asyncio
    async def test_malformed_response(self, connection, mock_stream) -> None:
        mock_stream.add_data(b"NOT HTTP AT ALL\r\n\r\n")

        with pytest.raises(ProtocolError):
            await connection.handle_request(get_request())

        assert connection.is_closed

    @pytest.mark.asyncio
    async def test_truncated_body(self, connection, mock_stream) -> None:
        mock_stream.add_data(b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nshort")

        response = await connection.handle_request(get_request())

        with pytest.raises(ProtocolError):
            await response.stream.aread()
        assert connection.is_closed

    @pytest.mark.asyncio
    async def test_write_failure_becomes_connection_error(self, connection, mock_stream) -> None:
        async def broken_write(data: bytes) -> None:
            raise BrokenPipeError("Broken pipe")

        mock_stream.write = broken_write

        with pytest.raises(ConnectionError, match="Broken pipe"):
            await connection.handle_request(get_request())

    @pytest.mark.asyncio
    async def test_read_timeout(self, mock_stream) -> None:
        connection = HTTP11Connection(mock_stream, read_timeout=0.01)

        async def slow_read(max_bytes=None) -> bytes:
            await asyncio.sleep(1)
            return b""

        mock_stream.read = slow_read

        with pytest.raises(TimeoutError, match="timed out"):
            await connection.handle_request(get_request())
        assert connection.is_closed

    @pytest.mark.asyncio
    async def test_unbounded_request_ignores_read_timeout(self, mock_stream) -> None:
        connection = HTTP11Connection(mock_stream, read_timeout=0.01)
        data = b"HTTP/1.1 200 OK\r\nContent-Length: 4\r\n\r\nslow"

        async def slow_read(max_bytes=None) -> bytes:
            await asyncio.sleep(0.05)
            return data

        mock_stream.read = slow_read

        response = await connection.handle_request(get_request(), bounded=False)

        assert await response.stream.aread() == b"slow"
        assert connection.is_idle

    @pytest.mark.asyncio
    async def test_early_stream_close(self, connection, mock_stream) -> None:
        mock_stream.add_data(b"HTTP/1.1 200 OK\r\nContent-Length: 4\r\n\r\nbody")

        response = await connection.handle_request(get_request())
        await response.stream.aclose()

        assert connection.is_closed


class TestConnectionExpiry:
    """Idle expiry of keep-alive connections."""

    @pytest.mark.asyncio
    async def test_has_expired(self) -> None:
        stream = MockNetworkStream(b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n")
        connection = HTTP11Connection(stream, keep_alive_timeout=30.0)

        assert not connection.has_expired()

        response = await connection.handle_request(get_request())
        await response.stream.aread()

        assert not connection.has_expired()
        connection._idle_since = time.monotonic() - 60
        assert connection.has_expired()
        assert not connection.has_expired(timeout=120.0)

    @pytest.mark.asyncio
    async def test_idle_connection_closed_by_peer_is_stale(self) -> None:
        stream = MockNetworkStream(b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n")
        connection = HTTP11Connection(stream)

        response = await connection.handle_request(get_request())
        await response.stream.aread()
        assert connection.is_idle
        assert not connection.is_stale

        stream.feed_eof()

        assert connection.is_stale
        assert connection.request_count == 1

    def test_header_helpers(self) -> None:
        connection = HTTP11Connection(MockNetworkStream())
        headers = [
            (b"Content-Length", b"42"),
            (b"Transfer-Encoding", b"chunked"),
            (b"Content-Encoding", b"GZIP "),
        ]
        assert connection._get_content_length(headers) == 42
        assert connection._get_content_length([(b"Content-Length", b"x")]) is None
        assert connection._is_chunked(headers)
        assert connection._get_content_encoding(headers) == "gzip"
