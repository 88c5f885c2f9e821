"""
HTTP/1.1 connection implementation for http_handle.

This module implements the HTTP11Connection class that manages
HTTP/1.1 protocol communication over a NetworkStream.
"""

import asyncio
import logging
import time
from typing import Optional, Dict, Any
from enum import Enum

import h11

from .http_primitives import Request, Response
from .streams import ResponseStream
from .network.stream import NetworkStream
from .exceptions import (
    ConnectionError,
    ProtocolError,
    TimeoutError,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536


class ConnectionState(Enum):
    """States of an HTTP/1.1 connection."""
    NEW = "new"           # Connection created, not yet used
    ACTIVE = "active"     # Connection handling a request
    IDLE = "idle"         # Connection available for reuse
    CLOSED = "closed"     # Connection closed, cannot be reused


class HTTP11Connection:
    """
    HTTP/1.1 connection manager.

    This class manages a single HTTP/1.1 connection over a NetworkStream,
    handling request/response cycles with proper state management and
    keep-alive support.
    """

    DEFAULT_READ_TIMEOUT = 30.0
    DEFAULT_WRITE_TIMEOUT = 30.0
    DEFAULT_KEEP_ALIVE_TIMEOUT = 300.0
    DEFAULT_MAX_REQUESTS = 100

    def __init__(
        self,
        stream: NetworkStream,
        read_timeout: Optional[float] = None,
        write_timeout: Optional[float] = None,
        keep_alive_timeout: Optional[float] = None,
        max_requests: Optional[int] = None,
    ):
        """
        Initialize HTTP/1.1 connection.

        Args:
            stream: The NetworkStream to use for communication
            read_timeout: Timeout for read operations in seconds
            write_timeout: Timeout for write operations in seconds
            keep_alive_timeout: Timeout for keep-alive connections in seconds
            max_requests: Maximum number of requests per connection
        """
        self._stream = stream
        self._h11_connection = h11.Connection(h11.CLIENT)
        self._state = ConnectionState.NEW
        self._state_lock = asyncio.Lock()
        self._idle_since: Optional[float] = None

        self._read_timeout = read_timeout or self.DEFAULT_READ_TIMEOUT
        self._write_timeout = write_timeout or self.DEFAULT_WRITE_TIMEOUT
        self._keep_alive_timeout = keep_alive_timeout or self.DEFAULT_KEEP_ALIVE_TIMEOUT
        self._max_requests = max_requests or self.DEFAULT_MAX_REQUESTS

        # Per-request state
        self._bounded = True
        self._response_started = False
        self._peer_closed = False
        self._close_requested = False

        # Metrics
        self._request_count = 0
        self._bytes_sent = 0
        self._bytes_received = 0
        self._total_request_time = 0.0
        self._errors_count = 0
        self._last_request_time: Optional[float] = None

        logger.debug("HTTP/1.1 connection initialized")

    async def handle_request(
        self,
        request: Request,
        timeout: Optional[float] = None,
        bounded: bool = True,
    ) -> Response:
        """
        Send a request and receive the response head.

        The returned response carries a ResponseStream; the connection
        stays ACTIVE until that stream is consumed or closed.

        Args:
            request: The HTTP request to send
            timeout: Optional timeout override for this request
            bounded: Apply the default read and write timeouts when
                ``timeout`` is None; when False, I/O waits indefinitely

        Returns:
            The HTTP response received

        Raises:
            ConnectionError: If connection is not available
            ProtocolError: If HTTP protocol error occurs
            TimeoutError: If request times out
        """
        start_time = time.time()
        self._request_count += 1
        self._last_request_time = start_time

        if self._request_count > self._max_requests:
            await self.close()
            raise ConnectionError(f"Connection exceeded max requests ({self._max_requests})")

        await self._acquire_connection()
        self._bounded = bounded
        self._response_started = False

        try:
            await self._send_request(request, timeout)
            response = await self._receive_response(timeout)
        except asyncio.TimeoutError as e:
            duration = time.time() - start_time
            self._errors_count += 1
            logger.error(
                f"Request {self._request_count} timed out after {duration:.3f}s"
            )
            await self.close()
            raise TimeoutError(
                f"{request.method.decode()} {request.full_url} timed out",
                timeout=timeout or self._read_timeout,
            ) from e
        except Exception as e:
            duration = time.time() - start_time
            self._errors_count += 1
            logger.error(
                f"Request {self._request_count} failed: {e} ({duration:.3f}s)"
            )
            await self.close()
            if isinstance(e, h11.ProtocolError):
                raise ProtocolError(str(e), cause=e) from e
            if isinstance(e, OSError):
                raise ConnectionError(str(e), cause=e) from e
            raise

        duration = time.time() - start_time
        self._total_request_time += duration

        logger.debug(
            f"Request {self._request_count}: {request.method.decode()} "
            f"{request.target.decode()} -> {response.status_code} ({duration:.3f}s)"
        )

        return response

    def _io_timeout(self, timeout: Optional[float], default: float) -> Optional[float]:
        if timeout is not None:
            return timeout
        return default if self._bounded else None

    async def _send_request(self, request: Request, timeout: Optional[float] = None) -> None:
        write_timeout = self._io_timeout(timeout, self._write_timeout)

        h11_request = h11.Request(
            method=request.method,
            target=request.target,
            headers=request.headers
        )

        await asyncio.wait_for(
            self._send_event(h11_request),
            timeout=write_timeout
        )

        if request.stream is not None:
            async for chunk in request.stream:
                await asyncio.wait_for(
                    self._send_event(h11.Data(data=chunk)),
                    timeout=write_timeout
                )

        await asyncio.wait_for(
            self._send_event(h11.EndOfMessage()),
            timeout=write_timeout
        )

    async def _send_event(self, event: h11.Event) -> None:
        """
        Send an h11 event to the network stream.

        Args:
            event: The h11 event to send
        """
        data = self._h11_connection.send(event)
        if data:
            await self._stream.write(data)
            self._bytes_sent += len(data)

    async def _receive_response(self, timeout: Optional[float] = None) -> Response:
        read_timeout = self._io_timeout(timeout, self._read_timeout)

        while True:
            event = self._h11_connection.next_event()

            if event is h11.NEED_DATA:
                data = await asyncio.wait_for(
                    self._stream.read(READ_CHUNK_SIZE),
                    timeout=read_timeout
                )
                if not data:
                    self._peer_closed = True
                    raise ProtocolError("Connection closed unexpectedly")
                self._response_started = True
                self._h11_connection.receive_data(data)
                self._bytes_received += len(data)
                continue

            # 1xx responses (100 Continue, 103 Early Hints) precede the real one
            if isinstance(event, h11.InformationalResponse):
                continue

            if isinstance(event, h11.Response):
                headers = list(event.headers.raw_items())
                self._close_requested = self._has_connection_close(headers)
                response_stream = ResponseStream(
                    connection=self,
                    content_length=self._get_content_length(headers),
                    chunked=self._is_chunked(headers),
                    encoding=self._get_content_encoding(headers),
                )

                return Response.create(
                    status_code=event.status_code,
                    headers=headers,
                    stream=response_stream,
                    extensions={
                        "reason_phrase": bytes(event.reason),
                        "http_version": bytes(event.http_version),
                    },
                )

            if isinstance(event, h11.ConnectionClosed):
                raise ProtocolError("Connection closed by server")

    async def _receive_body_chunk(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """
        Receive a chunk of response body.

        Args:
            timeout: Optional timeout override

        Returns:
            Chunk of data or None if end of body
        """
        read_timeout = self._io_timeout(timeout, self._read_timeout)

        while True:
            try:
                event = self._h11_connection.next_event()
            except h11.ProtocolError as e:
                raise ProtocolError(str(e), cause=e) from e

            if event is h11.NEED_DATA:
                try:
                    data = await asyncio.wait_for(
                        self._stream.read(READ_CHUNK_SIZE),
                        timeout=read_timeout
                    )
                except asyncio.TimeoutError as e:
                    raise TimeoutError("Reading response body timed out", timeout=read_timeout) from e
                except OSError as e:
                    raise ConnectionError(str(e), cause=e) from e
                # An empty read tells h11 about EOF, which ends
                # close-delimited bodies and flags truncated ones.
                if not data:
                    self._peer_closed = True
                self._h11_connection.receive_data(data)
                self._bytes_received += len(data)
                continue

            if isinstance(event, h11.Data):
                return bytes(event.data)

            if isinstance(event, h11.EndOfMessage):
                return None

            if isinstance(event, h11.ConnectionClosed):
                raise ProtocolError("Connection closed by server")

    def _get_content_length(self, headers: list) -> Optional[int]:
        """
        Extract Content-Length from headers.

        Args:
            headers: List of (name, value) header tuples

        Returns:
            Content-Length value or None if not present
        """
        for name, value in headers:
            if name.lower() == b"content-length":
                try:
                    return int(value)
                except ValueError:
                    return None
        return None

    def _is_chunked(self, headers: list) -> bool:
        """
        Check if response uses chunked transfer encoding.

        Args:
            headers: List of (name, value) header tuples

        Returns:
            True if chunked transfer encoding is used
        """
        for name, value in headers:
            if name.lower() == b"transfer-encoding" and value.lower() == b"chunked":
                return True
        return False

    def _has_connection_close(self, headers: list) -> bool:
        for name, value in headers:
            if name.lower() == b"connection":
                tokens = {token.strip() for token in value.lower().split(b",")}
                if b"close" in tokens:
                    return True
        return False

    def _get_content_encoding(self, headers: list) -> Optional[str]:
        for name, value in headers:
            if name.lower() == b"content-encoding":
                return value.decode("latin-1").strip().lower()
        return None

    async def _acquire_connection(self) -> None:
        """
        Acquire connection for use.

        Raises:
            ConnectionError: If connection is not available
        """
        async with self._state_lock:
            if self._state == ConnectionState.CLOSED:
                raise ConnectionError("Connection is closed")

            if self._state == ConnectionState.ACTIVE:
                raise ConnectionError("Connection is busy")

            self._state = ConnectionState.ACTIVE

    async def _release_connection(self) -> None:
        """Release connection after the response body was consumed."""
        async with self._state_lock:
            if self._state == ConnectionState.ACTIVE:
                if self._can_reuse_connection():
                    self._state = ConnectionState.IDLE
                    self._idle_since = time.monotonic()
                    self._h11_connection.start_next_cycle()
                else:
                    self._state = ConnectionState.CLOSED
                    await self._stream.aclose()

    def _can_reuse_connection(self) -> bool:
        """
        Check if connection can be reused for keep-alive.

        A body that ended at EOF, or a response carrying
        ``Connection: close``, leaves nothing to reuse.

        Returns:
            True if connection can be reused
        """
        return (
            not self._peer_closed
            and not self._close_requested
            and not self._stream.is_closed
            and self._h11_connection.our_state is h11.DONE
            and self._h11_connection.their_state is h11.DONE
            and self._request_count < self._max_requests
        )

    async def _response_closed(self) -> None:
        """Called when response body is fully consumed."""
        await self._release_connection()

    async def close(self) -> None:
        """Close the connection and cleanup resources."""
        async with self._state_lock:
            if self._state != ConnectionState.CLOSED:
                self._state = ConnectionState.CLOSED
                await self._stream.aclose()

        logger.debug(f"Connection closed after {self._request_count} requests")

    @property
    def is_closed(self) -> bool:
        """Check if connection is closed."""
        return self._state == ConnectionState.CLOSED

    @property
    def is_idle(self) -> bool:
        """Check if connection is idle and available for reuse."""
        return self._state == ConnectionState.IDLE

    @property
    def is_stale(self) -> bool:
        """An idle connection the peer has already shut down."""
        return self._state == ConnectionState.IDLE and (
            self._stream.is_closed or self._stream.at_eof
        )

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def response_started(self) -> bool:
        """Whether any byte of the current response has arrived."""
        return self._response_started

    @property
    def is_available(self) -> bool:
        """A fresh or idle connection can take the next request."""
        return self._state in (ConnectionState.NEW, ConnectionState.IDLE)

    def has_expired(self, timeout: Optional[float] = None) -> bool:
        """
        Check if idle connection has expired.

        Args:
            timeout: Idle timeout in seconds (uses keep_alive_timeout if None)

        Returns:
            True if connection has expired
        """
        if self._state != ConnectionState.IDLE or self._idle_since is None:
            return False

        check_timeout = timeout or self._keep_alive_timeout
        return (time.monotonic() - self._idle_since) > check_timeout

    @property
    def metrics(self) -> Dict[str, Any]:
        """
        Get connection metrics.

        Returns:
            Dictionary with connection metrics
        """
        return {
            "request_count": self._request_count,
            "bytes_sent": self._bytes_sent,
            "bytes_received": self._bytes_received,
            "total_request_time": self._total_request_time,
            "errors_count": self._errors_count,
            "last_request_time": self._last_request_time,
            "average_request_time": (
                self._total_request_time / self._request_count
                if self._request_count > 0 else 0.0
            ),
            "state": self._state.value,
            "idle_since": self._idle_since,
        }
