"""
Request execution for handles.

A Transfer performs one logical request with a handle: it builds the
wire request from the handle's configuration, checks a connection out
of the handle's pool, follows redirects, applies the cookie jar and
exposes the (decoded) response body as an async iterator. The fetch
functions and streaming connections are built on top of it.
"""

import asyncio
import base64
import logging
import time
import zlib
from dataclasses import dataclass, replace
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import AsyncIterator, List, Optional, Tuple, Union

from typing_extensions import TypedDict

from .exceptions import (
    ConnectionError,
    HTTPStatusError,
    InvalidURL,
    ProtocolError,
    TimeoutError,
    TooManyRedirects,
)
from .form import encode_multipart
from .handle import Handle
from .http11 import HTTP11Connection
from .http_primitives import Headers, Request, Response, URLComponents, resolve_location
from .streams import RequestStream, ResponseStream

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class Timings(TypedDict):
    redirect: float
    connect: float
    pretransfer: float
    starttransfer: float
    total: float


@dataclass(frozen=True)
class FetchResult:
    """
    Outcome of a completed request.

    ``headers`` holds the raw header blocks of every response in the
    redirect chain, the final response last. ``content`` is the body for
    memory fetches and the destination path for disk fetches.
    """
    url: str
    status_code: int
    type: Optional[str]
    headers: bytes
    modified: Optional[datetime]
    times: Timings
    content: Union[bytes, str, None] = None
    reason: str = ""
    redirects: int = 0

    def without_content(self) -> "FetchResult":
        return replace(self, content=None)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    @property
    def text(self) -> str:
        """Memory content decoded with the response charset."""
        if not isinstance(self.content, bytes):
            raise TypeError("content is not in memory")
        return self.content.decode(charset_from_type(self.type), errors="replace")

    def raise_for_status(self) -> "FetchResult":
        if self.status_code >= 400:
            raise HTTPStatusError(self.status_code, self.url)
        return self


def charset_from_type(content_type: Optional[str], default: str = "utf-8") -> str:
    """Extract the charset parameter of a Content-Type value."""
    if not content_type:
        return default
    for param in content_type.split(";")[1:]:
        key, _, value = param.strip().partition("=")
        if key.lower() == "charset" and value:
            return value.strip('"\'')
    return default


def parse_http_date(value: Optional[bytes]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value.decode("latin-1"))
    except (TypeError, ValueError):
        return None


class _ContentDecoder:
    """Incremental gzip/deflate decoding of a response body."""

    def __init__(self, encoding: str) -> None:
        self._encoding = encoding
        if encoding in ("gzip", "x-gzip"):
            self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        else:
            self._decompressor = zlib.decompressobj()
        self._first = True

    def decode(self, chunk: bytes) -> bytes:
        if self._first and self._encoding == "deflate":
            self._first = False
            try:
                return self._decompressor.decompress(chunk)
            except zlib.error:
                # Some servers send raw deflate without the zlib wrapper
                self._decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
        self._first = False
        return self._decompressor.decompress(chunk)

    def flush(self) -> bytes:
        return self._decompressor.flush()


DECODABLE_ENCODINGS = frozenset({"gzip", "x-gzip", "deflate"})


def _parse_url(url: str) -> URLComponents:
    try:
        return URLComponents.from_url(url)
    except ValueError as e:
        raise InvalidURL(url, cause=e) from e


def _can_resend(request: Request) -> bool:
    stream = request.stream
    return stream is None or (isinstance(stream, RequestStream) and stream.replayable)


class Transfer:
    """
    One request cycle (including redirects) on a handle.

    Usage::

        transfer = Transfer(handle, url)
        response = await transfer.start()
        async for chunk in transfer.iter_body():
            ...
        result = await transfer.finish()
    """

    def __init__(self, handle: Handle, url: str) -> None:
        self._handle = handle
        self._url = url
        self._connection: Optional[HTTP11Connection] = None
        self._response: Optional[Response] = None
        self._raw_headers: List[bytes] = []
        self._redirects = 0
        self._started = False
        self._finished = False
        self._times = {"redirect": 0.0, "connect": 0.0, "pretransfer": 0.0, "starttransfer": 0.0, "total": 0.0}
        self._t0 = 0.0
        self._deadline: Optional[float] = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def response(self) -> Optional[Response]:
        return self._response

    async def start(self) -> Response:
        """
        Perform the request and follow redirects.

        Returns:
            The final response; its body is still unread.
        """
        if self._started:
            raise RuntimeError("Transfer already started")
        self._started = True

        await self._handle.acquire()
        self._t0 = time.perf_counter()
        timeout = self._handle.getopt("timeout")
        self._deadline = self._t0 + timeout if timeout else None

        try:
            request = self._build_request(self._url)
            while True:
                hop_start = time.perf_counter()
                response = await self._send(request)
                if not self._should_follow(request, response):
                    break

                self._redirects += 1
                max_redirects = self._handle.getopt("maxredirs")
                location = response.get_header(b"location").decode("latin-1")
                next_url = resolve_location(request.full_url, location)
                if self._redirects > max_redirects:
                    await self._discard_body(response)
                    raise TooManyRedirects(next_url, max_redirects)

                await self._discard_body(response)
                logger.debug(f"Redirect {response.status_code}: {request.full_url} -> {next_url}")
                self._times["redirect"] += time.perf_counter() - hop_start
                request = self._redirect_request(request, response.status_code, next_url)
        except BaseException:
            await self.abort()
            raise

        self._url = request.full_url
        self._response = response
        return response

    async def _send(self, request: Request) -> Response:
        cookie = self._cookie_header(request)
        if cookie:
            request = request.add_header(b"Cookie", cookie)

        if self._handle.getopt("verbose"):
            self._log_request(request)

        self._connection = await self._checkout(request)
        reused = self._connection.request_count > 0
        elapsed = time.perf_counter() - self._t0
        self._times["connect"] = self._times["connect"] or elapsed
        self._times["pretransfer"] = elapsed

        try:
            response = await self._connection.handle_request(
                request, timeout=self._remaining(), bounded=False
            )
        except (ConnectionError, ProtocolError) as e:
            # A kept-alive connection the server closed while idle fails
            # before any response byte; the request is sent again once.
            if not reused or self._connection.response_started or not _can_resend(request):
                raise
            logger.debug(f"Kept-alive connection to {request.full_url} was closed, retrying: {e}")
            await self._release()
            self._connection = await self._checkout(request, reuse=False)
            response = await self._connection.handle_request(
                request, timeout=self._remaining(), bounded=False
            )
        self._times["starttransfer"] = time.perf_counter() - self._t0

        self._raw_headers.append(response.raw_headers())
        self._handle.cookie_jar.extract(request, response)

        if self._handle.getopt("verbose"):
            self._log_response(response)

        return response

    async def _checkout(self, request: Request, reuse: bool = True) -> HTTP11Connection:
        return await self._handle.pool.get_connection(
            request.scheme.decode(),
            request.host.decode(),
            request.port,
            tls=self._handle.tls_settings,
            connect_timeout=self._connect_timeout(),
            keepalive=self._handle.getopt("tcp_keepalive"),
            reuse=reuse,
        )

    def _cookie_header(self, request: Request) -> Optional[bytes]:
        jar_cookies = self._handle.cookie_jar.cookie_header(request)
        extra = self._handle.getopt("cookie")
        parts = [p for p in (jar_cookies, extra.encode("latin-1") if extra else None) if p]
        return b"; ".join(parts) if parts else None

    def _connect_timeout(self) -> Optional[float]:
        connect = self._handle.getopt("connecttimeout") or None
        remaining = self._remaining()
        if remaining is None:
            return connect
        return min(connect, remaining) if connect else remaining

    def _remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        remaining = self._deadline - time.perf_counter()
        if remaining <= 0:
            raise TimeoutError(f"Transfer of {self._url} timed out", timeout=self._handle.getopt("timeout"))
        return remaining

    def _should_follow(self, request: Request, response: Response) -> bool:
        if not (
            self._handle.getopt("followlocation")
            and response.status_code in REDIRECT_STATUSES
            and response.has_header(b"location")
        ):
            return False
        # 307/308 resend the body, which a one-shot stream cannot do
        if response.status_code in (307, 308):
            return _can_resend(request)
        return True

    async def _discard_body(self, response: Response) -> None:
        async for _ in self._body_chunks(response):
            pass
        await self._release()

    def _method_and_body(self) -> Tuple[bytes, Optional[RequestStream], Headers]:
        handle = self._handle
        form = handle.form
        postfields = handle.getopt("postfields")
        headers: Headers = []
        body: Optional[RequestStream] = None
        method = b"GET"

        if form is not None:
            chunks, content_type = encode_multipart(form)
            body = RequestStream(chunks)
            headers.append((b"Content-Type", content_type.encode()))
            method = b"POST"
        elif postfields is not None:
            data = postfields.encode("utf-8") if isinstance(postfields, str) else postfields
            body = RequestStream(data)
            headers.append((b"Content-Type", b"application/x-www-form-urlencoded"))
            method = b"POST"
        elif handle.getopt("post"):
            body = RequestStream(b"")
            method = b"POST"
        elif handle.getopt("nobody"):
            method = b"HEAD"

        custom = handle.getopt("customrequest")
        if custom:
            method = custom.upper().encode()

        if body is not None:
            headers.append((b"Content-Length", str(body.content_length or 0).encode()))
        return method, body, headers

    def _build_request(self, url: str) -> Request:
        handle = self._handle
        components = _parse_url(url)
        method, body, body_headers = self._method_and_body()

        defaults: List[Tuple[str, str]] = [
            ("Host", components.authority.decode()),
            ("User-Agent", handle.getopt("useragent")),
            ("Accept", "*/*"),
        ]
        if handle.getopt("accept_encoding"):
            defaults.append(("Accept-Encoding", handle.getopt("accept_encoding")))
        if handle.getopt("referer"):
            defaults.append(("Referer", handle.getopt("referer")))
        if handle.getopt("range"):
            defaults.append(("Range", f"bytes={handle.getopt('range')}"))
        username = handle.getopt("username")
        if username is not None:
            password = handle.getopt("password") or ""
            token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode()
            defaults.append(("Authorization", f"Basic {token}"))

        custom = handle.headers
        custom_lower = {name.lower() for name in custom}
        headers: Headers = [
            (name.encode(), value.encode("latin-1"))
            for name, value in defaults
            if name.lower() not in custom_lower
        ]
        headers.extend(
            (name, value) for name, value in body_headers
            if name.decode().lower() not in custom_lower or name == b"Content-Length"
        )
        headers.extend(
            (name.encode(), value.encode("latin-1"))
            for name, value in custom.items()
            if value != "" and name.lower() != "content-length"
        )

        return Request.create(method=method, url=components, headers=headers, stream=body)

    def _redirect_request(self, request: Request, status_code: int, url: str) -> Request:
        components = _parse_url(url)
        same_origin = (components.scheme, components.host, components.port) == request.url[:3]

        keep_body = status_code in (307, 308) or request.method in (b"GET", b"HEAD")
        method = request.method if keep_body else b"GET"
        body_headers = {b"content-length", b"content-type", b"transfer-encoding"}

        headers: Headers = []
        for name, value in request.headers:
            lowered = name.lower()
            if lowered == b"host":
                value = components.authority
            elif lowered == b"cookie":
                continue
            elif lowered == b"authorization" and not same_origin:
                continue
            elif lowered in body_headers and not keep_body:
                continue
            headers.append((name, value))

        stream = request.stream if keep_body else None
        return Request.create(method=method, url=components, headers=headers, stream=stream)

    async def _body_chunks(self, response: Response) -> AsyncIterator[bytes]:
        stream = response.stream
        if stream is None:
            return
        encoding = stream.encoding if isinstance(stream, ResponseStream) else None
        decoder = _ContentDecoder(encoding) if encoding in DECODABLE_ENCODINGS else None

        iterator = stream.__aiter__()
        while True:
            try:
                remaining = self._remaining()
                if remaining is None:
                    chunk = await iterator.__anext__()
                else:
                    chunk = await asyncio.wait_for(iterator.__anext__(), remaining)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError as e:
                raise TimeoutError(
                    f"Transfer of {self._url} timed out", timeout=self._handle.getopt("timeout")
                ) from e
            if decoder is not None:
                chunk = decoder.decode(chunk)
            if chunk:
                yield chunk

        if decoder is not None:
            tail = decoder.flush()
            if tail:
                yield tail

    async def iter_body(self) -> AsyncIterator[bytes]:
        """Yield the decoded body of the final response."""
        if self._response is None:
            raise RuntimeError("Transfer not started")
        try:
            async for chunk in self._body_chunks(self._response):
                yield chunk
        except Exception:
            await self.abort()
            raise

    async def _release(self) -> None:
        if self._connection is not None:
            connection, self._connection = self._connection, None
            await self._handle.pool.release_connection(connection)

    def result(self, content: Union[bytes, str, None] = None) -> FetchResult:
        response = self._response
        content_type = response.get_header(b"content-type")
        return FetchResult(
            url=self._url,
            status_code=response.status_code,
            type=content_type.decode("latin-1") if content_type else None,
            headers=b"".join(self._raw_headers),
            modified=parse_http_date(response.get_header(b"last-modified")),
            times=Timings(**self._times),
            content=content,
            reason=response.reason.decode("latin-1"),
            redirects=self._redirects,
        )

    async def finish(self, content: Union[bytes, str, None] = None) -> FetchResult:
        """
        Complete the transfer once the body has been consumed.

        Returns the result and records it as the handle's last result.
        """
        if self._finished:
            raise RuntimeError("Transfer already finished")
        self._times["total"] = time.perf_counter() - self._t0
        try:
            await self._release()
        finally:
            self._finished = True
            self._handle.release()
        result = self.result(content)
        self._handle.last_result = result
        logger.debug(
            f"Transfer complete: {result.url} -> {result.status_code} "
            f"({self._times['total']:.3f}s, {self._redirects} redirects)"
        )
        return result

    async def abort(self) -> None:
        """Stop the transfer, closing its connection."""
        if self._finished:
            return
        self._finished = True
        try:
            if self._connection is not None:
                await self._connection.close()
                await self._release()
        finally:
            self._handle.release()

    def _log_request(self, request: Request) -> None:
        logger.info(f"> {request.method.decode()} {request.target.decode()} HTTP/1.1")
        for name, value in request.headers:
            logger.info(f"> {name.decode()}: {value.decode('latin-1')}")

    def _log_response(self, response: Response) -> None:
        for line in response.raw_headers().decode("latin-1").splitlines():
            if line:
                logger.info(f"< {line}")
