"""
Fetch interfaces.

``fetch_memory``, ``fetch_disk`` and ``fetch_stream`` complete the
request whatever the HTTP status and leave status checks to the caller.
``download`` is the strict variant: it refuses unsuccessful responses
and never leaves a partial file behind.
"""

import logging
import os
import stat
import tempfile
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, Union

from typing_extensions import Literal

from .exceptions import HTTPStatusError
from .handle import Handle, new_handle
from .transfer import FetchResult, Transfer

logger = logging.getLogger(__name__)

PathType = Union[str, "os.PathLike[str]"]


@asynccontextmanager
async def _using_handle(handle: Optional[Handle]) -> AsyncIterator[Handle]:
    """Use the given handle, or a throwaway one closed afterwards."""
    if handle is not None:
        yield handle
        return
    temporary = new_handle()
    try:
        yield temporary
    finally:
        await temporary.close()


@asynccontextmanager
async def _started(handle: Handle, url: str) -> AsyncIterator[Transfer]:
    """Start a transfer; abort it if the body is not fully handled."""
    transfer = Transfer(handle, url)
    await transfer.start()
    try:
        yield transfer
    except BaseException:
        await transfer.abort()
        raise


async def fetch_memory(url: str, handle: Optional[Handle] = None) -> FetchResult:
    """
    Fetch a URL into memory.

    Non-2xx responses are returned like any other; inspect
    ``status_code``. Only the ``failonerror`` option makes this raise.

    Raises:
        HTTPStatusError: For status >= 400 when ``failonerror`` is set
        HTTPHandleError: For connection, TLS and protocol failures
    """
    async with _using_handle(handle) as h:
        async with _started(h, url) as transfer:
            if h.getopt("failonerror") and transfer.response.status_code >= 400:
                raise HTTPStatusError(transfer.response.status_code, transfer.url)

            chunks = []
            async for chunk in transfer.iter_body():
                chunks.append(chunk)
            return await transfer.finish(b"".join(chunks))


async def fetch_stream(
    url: str,
    callback: Callable[[bytes], object],
    handle: Optional[Handle] = None,
) -> FetchResult:
    """
    Fetch a URL, passing each body chunk to ``callback`` as it arrives.

    The callback may be a plain function or a coroutine function.
    """
    async with _using_handle(handle) as h:
        async with _started(h, url) as transfer:
            async for chunk in transfer.iter_body():
                outcome = callback(chunk)
                if hasattr(outcome, "__await__"):
                    await outcome
            return await transfer.finish()


async def fetch_disk(url: str, path: PathType, handle: Optional[Handle] = None) -> FetchResult:
    """
    Fetch a URL and write the body to ``path``.

    Like ``fetch_memory`` this does not raise on HTTP status; the body
    of an error response is written too. The result's ``content`` is
    the absolute destination path.
    """
    path = os.path.abspath(os.fspath(path))
    async with _using_handle(handle) as h:
        async with _started(h, url) as transfer:
            with open(path, "wb") as f:
                async for chunk in transfer.iter_body():
                    f.write(chunk)
            return await transfer.finish(path)


def _target_mode(path: str) -> int:
    """Mode for a replaced file: the existing one's, else what open() would give."""
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


async def download(
    url: str,
    destfile: PathType,
    handle: Optional[Handle] = None,
    mode: Literal["wb", "ab"] = "wb",
    quiet: bool = True,
) -> str:
    """
    Download a URL to a file.

    The body is written to a temporary file next to ``destfile`` and
    moved into place once complete. In append mode the body is appended
    to ``destfile`` directly.

    Returns:
        The absolute destination path

    Raises:
        HTTPStatusError: If the server answers with status >= 400
        HTTPHandleError: For connection, TLS and protocol failures
    """
    if mode not in ("wb", "ab"):
        raise ValueError(f"mode must be 'wb' or 'ab', got {mode!r}")

    destfile = os.path.abspath(os.fspath(destfile))
    async with _using_handle(handle) as h:
        async with _started(h, url) as transfer:
            if transfer.response.status_code >= 400:
                raise HTTPStatusError(transfer.response.status_code, transfer.url)

            received = 0
            if mode == "ab":
                with open(destfile, "ab") as f:
                    async for chunk in transfer.iter_body():
                        f.write(chunk)
                        received += len(chunk)
            else:
                fd, partial = tempfile.mkstemp(
                    prefix=".download-", dir=os.path.dirname(destfile)
                )
                try:
                    with os.fdopen(fd, "wb") as f:
                        async for chunk in transfer.iter_body():
                            f.write(chunk)
                            received += len(chunk)
                    os.chmod(partial, _target_mode(destfile))
                    os.replace(partial, destfile)
                except BaseException:
                    os.unlink(partial)
                    raise

            result = await transfer.finish(destfile)

    if not quiet:
        logger.info(f"Downloaded {received} bytes from {result.url} to {destfile}")
    return destfile
