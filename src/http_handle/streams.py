"""
Streaming framework for http_handle.

This module provides streaming abstractions for HTTP request and response bodies.
Consumption drives reading from the network, so a slow reader applies
backpressure all the way down to the socket.
"""

from abc import ABC, abstractmethod
from typing import (
    AsyncIterable,
    AsyncIterator,
    Optional,
    Union,
    List,
    TYPE_CHECKING,
)

from .exceptions import HTTPHandleError, StreamError

if TYPE_CHECKING:
    from .http11 import HTTP11Connection  # Forward reference


class StreamInterface(ABC):
    """
    Base interface for all streams.

    All streams must implement this interface to ensure
    consistent behavior across the library.
    """

    @abstractmethod
    def __aiter__(self) -> "StreamInterface":
        """Return self as async iterator."""
        pass

    @abstractmethod
    async def __anext__(self) -> bytes:
        """Get next chunk of data."""
        pass

    @abstractmethod
    async def aclose(self) -> None:
        """Close the stream and cleanup resources."""
        pass

    @abstractmethod
    async def aread(self) -> bytes:
        """Read entire stream and return as bytes."""
        pass


class RequestStream(StreamInterface):
    """
    Stream for HTTP request bodies.

    Request bodies built from bytes or lists of bytes are replayable:
    every iteration starts from the beginning, which lets a redirected
    request (307/308) resend the same body.
    """

    def __init__(
        self,
        data: Union[bytes, List[bytes], AsyncIterable[bytes]],
        content_length: Optional[int] = None,
    ) -> None:
        """
        Initialize RequestStream.

        Args:
            data: The data to stream. Can be bytes, list of bytes, or async iterable
            content_length: Optional content length for validation
        """
        self._data = data
        self._closed = False
        self._iterator: Optional[AsyncIterator[bytes]] = None

        if content_length is not None and content_length < 0:
            raise ValueError("content_length must be non-negative")

        self._actual_length = calculate_content_length(data)

        if (content_length is not None and self._actual_length >= 0
                and self._actual_length != content_length):
            raise ValueError(
                f"Actual content length ({self._actual_length}) "
                f"does not match provided content_length ({content_length})"
            )
        self._content_length = content_length if content_length is not None else (
            self._actual_length if self._actual_length >= 0 else None
        )

    def _get_iterator(self) -> AsyncIterator[bytes]:
        if isinstance(self._data, bytes):
            return self._iter_list([self._data])
        elif isinstance(self._data, list):
            return self._iter_list(self._data)
        return self._data.__aiter__()

    async def _iter_list(self, data: List[bytes]) -> AsyncIterator[bytes]:
        for chunk in data:
            if chunk:  # Skip empty chunks
                yield chunk

    def __aiter__(self) -> "RequestStream":
        """Return self as async iterator."""
        if self._closed:
            raise StreamError("Cannot iterate over closed stream")

        self._iterator = self._get_iterator()
        return self

    async def __anext__(self) -> bytes:
        """Get next chunk of data."""
        if self._closed:
            raise StreamError("Cannot read from closed stream")

        if self._iterator is None:
            raise RuntimeError("Stream not initialized for iteration")

        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            raise
        except Exception as e:
            raise StreamError(f"Error reading from stream: {e}", cause=e) from e

    async def aread(self) -> bytes:
        """Read entire stream and return as bytes."""
        return await read_stream_to_bytes(self)

    async def aclose(self) -> None:
        """Close the stream and cleanup resources."""
        self._closed = True
        self._iterator = None

    @property
    def content_length(self) -> Optional[int]:
        """Get the content length of the stream, None when unknown."""
        return self._content_length

    @property
    def replayable(self) -> bool:
        """Whether the body can be sent more than once."""
        return isinstance(self._data, (bytes, list))

    @property
    def closed(self) -> bool:
        """Get whether the stream is closed."""
        return self._closed


class ResponseStream(StreamInterface):
    """
    Stream for HTTP response bodies.

    Pulls body chunks from the owning HTTP11Connection. When the body
    has been fully consumed the connection is released for reuse; on
    error or early close the connection is closed.
    """

    def __init__(
        self,
        connection: "HTTP11Connection",
        content_length: Optional[int] = None,
        chunked: bool = False,
        encoding: Optional[str] = None,
    ) -> None:
        """
        Initialize ResponseStream.

        Args:
            connection: The HTTP11Connection that owns this stream
            content_length: Optional content length for validation
            chunked: Whether response uses chunked transfer encoding
            encoding: Optional content encoding (gzip, deflate, etc.)
        """
        self._connection = connection
        self._content_length = content_length
        self._chunked = chunked
        self._encoding = encoding
        self._closed = False
        self._complete = False
        self._bytes_read = 0

        if content_length is not None and content_length < 0:
            raise ValueError("content_length must be non-negative")

    def __aiter__(self) -> "ResponseStream":
        """Return self as async iterator."""
        if self._closed and not self._complete:
            raise StreamError("Cannot iterate over closed stream")
        return self

    async def __anext__(self) -> bytes:
        """Get next chunk of data."""
        if self._complete:
            raise StopAsyncIteration

        if self._closed:
            raise StreamError("Cannot read from closed stream")

        try:
            chunk = await self._connection._receive_body_chunk()
        except HTTPHandleError:
            await self._abort()
            raise
        except Exception as e:
            await self._abort()
            raise StreamError(f"Error reading from stream: {e}", cause=e) from e

        if chunk is None:
            self._complete = True
            self._closed = True
            await self._connection._response_closed()
            raise StopAsyncIteration

        self._bytes_read += len(chunk)

        if (self._content_length is not None and
                self._bytes_read > self._content_length):
            await self._abort()
            raise StreamError(
                f"Read more bytes ({self._bytes_read}) than "
                f"content_length ({self._content_length})"
            )

        return chunk

    async def _abort(self) -> None:
        self._closed = True
        await self._connection.close()

    async def aread(self) -> bytes:
        """Read entire stream and return as bytes."""
        if self._closed and not self._complete:
            raise StreamError("Cannot read from closed stream")
        return await read_stream_to_bytes(self)

    async def aclose(self) -> None:
        """
        Close the stream and cleanup resources.

        Closing before the body is complete leaves unread bytes on the
        wire, so the connection cannot be reused.
        """
        if not self._closed:
            self._closed = True
            await self._connection.close()

    @property
    def content_length(self) -> Optional[int]:
        """Get the content length of the stream."""
        return self._content_length

    @property
    def chunked(self) -> bool:
        """Get whether the stream uses chunked transfer encoding."""
        return self._chunked

    @property
    def encoding(self) -> Optional[str]:
        """Get the content encoding of the stream."""
        return self._encoding

    @property
    def closed(self) -> bool:
        """Get whether the stream is closed."""
        return self._closed

    @property
    def complete(self) -> bool:
        """Get whether the whole body was received."""
        return self._complete

    @property
    def bytes_read(self) -> int:
        """Get the number of bytes read so far."""
        return self._bytes_read


async def read_stream_to_bytes(stream: AsyncIterable[bytes]) -> bytes:
    """
    Read entire stream and return as bytes.

    Args:
        stream: Async iterable of bytes

    Returns:
        All bytes from the stream concatenated
    """
    chunks = []
    async for chunk in stream:
        chunks.append(chunk)
    return b"".join(chunks)


def calculate_content_length(data: Union[bytes, List[bytes], AsyncIterable[bytes]]) -> int:
    """
    Calculate content length for data.

    Returns:
        Total length in bytes, or -1 for async iterables whose
        length is unknown until consumed
    """
    if isinstance(data, bytes):
        return len(data)
    elif isinstance(data, list):
        return sum(len(chunk) for chunk in data)
    return -1
