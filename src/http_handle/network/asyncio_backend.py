"""
asyncio streams network backend.

Default backend used by handles: plain TCP through
``asyncio.open_connection`` and TLS upgrades through
``StreamWriter.start_tls``.
"""

import asyncio
import logging
import ssl
from typing import Any, List, Optional

from .backend import NetworkBackend
from .stream import NetworkStream
from .utils import configure_socket, create_ssl_context

logger = logging.getLogger(__name__)


class AsyncioNetworkStream(NetworkStream):
    """Network stream over an asyncio StreamReader/StreamWriter pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")
        return await self._reader.read(max_bytes or 65536)

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self._writer.write(data)
        await self._writer.drain()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            # Peers often drop TLS connections without close_notify.
            logger.debug(f"Error while closing stream: {e}")

    def get_extra_info(self, name: str) -> Optional[Any]:
        if name == "peercert":
            ssl_object = self._writer.get_extra_info("ssl_object")
            return ssl_object.getpeercert() if ssl_object is not None else None
        return self._writer.get_extra_info(name)

    @property
    def is_closed(self) -> bool:
        return self._closed or self._writer.is_closing()

    @property
    def at_eof(self) -> bool:
        return self._reader.at_eof()


class AsyncioNetworkBackend(NetworkBackend):
    """Network backend built on asyncio streams."""

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        keepalive: bool = True,
    ) -> AsyncioNetworkStream:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout
        )
        sock = writer.get_extra_info("socket")
        if sock is not None:
            configure_socket(sock, keepalive=keepalive)
        logger.debug(f"TCP connection established to {host}:{port}")
        return AsyncioNetworkStream(reader, writer)

    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> AsyncioNetworkStream:
        if not isinstance(stream, AsyncioNetworkStream):
            raise TypeError("AsyncioNetworkBackend can only upgrade its own streams")

        context = ssl_context or create_ssl_context()
        if alpn_protocols:
            context.set_alpn_protocols(alpn_protocols)

        await stream._writer.start_tls(
            context,
            server_hostname=host,
            ssl_handshake_timeout=timeout,
        )
        logger.debug(f"TLS established to {host}:{port}")
        return AsyncioNetworkStream(stream._reader, stream._writer)
