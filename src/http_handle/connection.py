"""
Streaming connections.

A Connection reads a response body incrementally, by lines or by
bytes, instead of buffering it whole. It is created closed; opening it
performs the request and fails on unsuccessful HTTP status.

Example:
    >>> async with connect("https://httpbin.org/stream/10") as con:
    ...     first = await con.readline()
    ...     rest = await con.readlines()
"""

import logging
from typing import AsyncIterator, List, Optional, Union

from typing_extensions import Literal

from .exceptions import HTTPStatusError, StreamError
from .handle import Handle, new_handle
from .transfer import FetchResult, Transfer, charset_from_type

logger = logging.getLogger(__name__)

Line = Union[str, bytes]


class Connection:
    """Incremental reader over one HTTP response body."""

    def __init__(
        self,
        url: str,
        handle: Optional[Handle] = None,
        mode: Literal["r", "rb"] = "r",
    ) -> None:
        if mode not in ("r", "rb"):
            raise ValueError(f"mode must be 'r' or 'rb', got {mode!r}")
        self._url = url
        self._owns_handle = handle is None
        self._handle = handle
        self._mode = mode
        self._transfer: Optional[Transfer] = None
        self._body: Optional[AsyncIterator[bytes]] = None
        self._buffer = bytearray()
        self._eof = False
        self._charset = "utf-8"
        self.result: Optional[FetchResult] = None

    @property
    def url(self) -> str:
        return self._transfer.url if self._transfer is not None else self._url

    @property
    def is_open(self) -> bool:
        return self._transfer is not None and self.result is None and self._body is not None

    @property
    def status_code(self) -> Optional[int]:
        if self._transfer is None or self._transfer.response is None:
            return None
        return self._transfer.response.status_code

    @property
    def text_mode(self) -> bool:
        return self._mode == "r"

    async def open(self) -> "Connection":
        """
        Perform the request and prepare the body for reading.

        Raises:
            HTTPStatusError: If the server answers with status >= 400
            StreamError: If the connection was already opened
        """
        if self._transfer is not None:
            raise StreamError("Connection can only be opened once")

        if self._handle is None:
            self._handle = new_handle()

        self._transfer = Transfer(self._handle, self._url)
        try:
            response = await self._transfer.start()
        except BaseException:
            await self._close_owned_handle()
            raise

        if response.status_code >= 400:
            await self._transfer.abort()
            await self._close_owned_handle()
            raise HTTPStatusError(response.status_code, self._transfer.url)

        content_type = response.get_header(b"content-type")
        self._charset = charset_from_type(content_type.decode("latin-1") if content_type else None)
        self._body = self._transfer.iter_body().__aiter__()
        logger.debug(f"Connection opened to {self._transfer.url} ({response.status_code})")
        return self

    def _check_open(self) -> None:
        if self._body is None:
            raise StreamError("Connection is not open")

    async def _fill(self) -> bool:
        """Buffer the next body chunk. Returns False at end of body."""
        if self._eof:
            return False
        try:
            chunk = await self._body.__anext__()
        except StopAsyncIteration:
            self._eof = True
            self.result = await self._transfer.finish()
            await self._close_owned_handle()
            return False
        self._buffer.extend(chunk)
        return True

    async def read(self, n: int = -1) -> bytes:
        """
        Read up to ``n`` bytes; all remaining bytes when ``n`` is negative.

        Returns b"" at end of body.
        """
        self._check_open()
        if n < 0:
            while await self._fill():
                pass
        else:
            while len(self._buffer) < n and await self._fill():
                pass
            if n == 0:
                return b""

        size = len(self._buffer) if n < 0 else min(n, len(self._buffer))
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    async def readline(self) -> Line:
        """
        Read one line without its terminator (LF or CRLF).

        Returns an empty line at end of body; a final line without a
        terminator is still returned.
        """
        self._check_open()
        while True:
            index = self._buffer.find(b"\n")
            if index >= 0:
                raw = bytes(self._buffer[:index])
                del self._buffer[:index + 1]
                break
            if not await self._fill():
                raw = bytes(self._buffer)
                self._buffer.clear()
                break

        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return self._decode(raw)

    async def readlines(self, n: int = -1) -> List[Line]:
        """Read up to ``n`` lines, or all remaining lines when ``n`` is negative."""
        lines: List[Line] = []
        while n < 0 or len(lines) < n:
            if self.at_eof:
                break
            line = await self.readline()
            if not line and self.at_eof:
                break
            lines.append(line)
        return lines

    @property
    def at_eof(self) -> bool:
        return self._eof and not self._buffer

    def _decode(self, raw: bytes) -> Line:
        if self.text_mode:
            return raw.decode(self._charset, errors="replace")
        return raw

    def __aiter__(self) -> "Connection":
        return self

    async def __anext__(self) -> Line:
        self._check_open()
        if self.at_eof:
            raise StopAsyncIteration
        line = await self.readline()
        if not line and self.at_eof:
            raise StopAsyncIteration
        return line

    async def close(self) -> None:
        """Close the connection, discarding any unread body."""
        if self._body is not None:
            await self._body.aclose()
        if self._transfer is not None and self.result is None:
            await self._transfer.abort()
        self._body = None
        self._buffer.clear()
        await self._close_owned_handle()

    async def _close_owned_handle(self) -> None:
        if self._owns_handle and self._handle is not None:
            await self._handle.close()

    async def __aenter__(self) -> "Connection":
        if self._transfer is None:
            await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Connection {self.url!r} mode={self._mode!r} {state}>"


def connect(url: str, handle: Optional[Handle] = None, mode: Literal["r", "rb"] = "r") -> Connection:
    """Create an unopened streaming connection to ``url``."""
    return Connection(url, handle=handle, mode=mode)
