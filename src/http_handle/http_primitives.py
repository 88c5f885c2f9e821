"""
HTTP primitives for http_handle.

This module defines the core data structures for HTTP requests and responses.
All classes are immutable to ensure thread safety and simplify reasoning.
"""

from typing import (
    Any,
    AsyncIterable,
    Dict,
    List,
    Optional,
    Tuple,
    Union,
    NamedTuple,
)
from dataclasses import dataclass, field
from urllib.parse import urlsplit, urlunsplit, urljoin


# Type aliases for better readability
Headers = List[Tuple[bytes, bytes]]
URL = Tuple[bytes, bytes, int, bytes]  # (scheme, host, port, target)
StatusCode = int

DEFAULT_PORTS = {b"http": 80, b"https": 443}


class URLComponents(NamedTuple):
    """Immutable representation of URL components."""
    scheme: bytes
    host: bytes
    port: int
    target: bytes

    @classmethod
    def from_url(cls, url: str) -> "URLComponents":
        """
        Create URLComponents from a URL string.

        The target keeps the query string; fragments are never sent
        to the server and are dropped.
        """
        parsed = urlsplit(url)
        scheme = parsed.scheme.lower().encode() if parsed.scheme else b"http"
        if scheme not in DEFAULT_PORTS:
            raise ValueError(f"Unsupported URL scheme: {parsed.scheme}")
        if not parsed.hostname:
            raise ValueError(f"No hostname found in URL: {url}")

        host = parsed.hostname.encode("idna")
        port = parsed.port or DEFAULT_PORTS[scheme]
        target = parsed.path or "/"
        if parsed.query:
            target += "?" + parsed.query

        return cls(scheme=scheme, host=host, port=port, target=target.encode())

    def to_tuple(self) -> URL:
        """Convert to the internal URL tuple format."""
        return (self.scheme, self.host, self.port, self.target)

    @property
    def authority(self) -> bytes:
        """Host header value, omitting the scheme's default port."""
        host = self.host
        if b":" in host:
            host = b"[" + host + b"]"
        if DEFAULT_PORTS.get(self.scheme) == self.port:
            return host
        return host + b":" + str(self.port).encode()

    def to_url(self) -> str:
        """Rebuild an absolute URL string."""
        path, _, query = self.target.decode().partition("?")
        return urlunsplit(
            (self.scheme.decode(), self.authority.decode(), path, query, "")
        )


def resolve_location(base_url: str, location: str) -> str:
    """Resolve a Location header against the URL that produced it."""
    return urljoin(base_url, location)


@dataclass(frozen=True)
class Request:
    """
    Immutable HTTP request representation.

    This class represents an HTTP request with all its components.
    Once created, the request cannot be modified - any changes
    must create a new Request instance.
    """

    method: bytes
    url: URL
    headers: Headers = field(default_factory=list)
    stream: Optional[AsyncIterable[bytes]] = None

    def __post_init__(self) -> None:
        """Validate request data after initialization."""
        if not isinstance(self.method, bytes):
            raise ValueError("method must be bytes")

        if not isinstance(self.url, tuple) or len(self.url) != 4:
            raise ValueError("url must be a 4-tuple (scheme, host, port, target)")

        if not all(isinstance(component, bytes) for component in self.url[:2] + (self.url[3],)):
            raise ValueError("URL components must be bytes")

        if not isinstance(self.url[2], int):
            raise ValueError("URL port must be int")

        if not isinstance(self.headers, list):
            raise ValueError("headers must be a list")

        for name, value in self.headers:
            if not isinstance(name, bytes) or not isinstance(value, bytes):
                raise ValueError("header names and values must be bytes")

    @classmethod
    def create(
        cls,
        method: Union[str, bytes],
        url: Union[str, URL, URLComponents],
        headers: Optional[Headers] = None,
        stream: Optional[AsyncIterable[bytes]] = None,
    ) -> "Request":
        """
        Create a Request with proper type conversion.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: URL string, tuple, or URLComponents
            headers: Optional list of (name, value) header tuples
            stream: Optional async iterable for request body

        Returns:
            New Request instance
        """
        if isinstance(method, str):
            method = method.encode()

        if isinstance(url, str):
            url = URLComponents.from_url(url).to_tuple()
        elif isinstance(url, URLComponents):
            url = url.to_tuple()
        elif not isinstance(url, tuple):
            raise ValueError("url must be string, URLComponents, or URL tuple")

        if headers is None:
            headers = []

        return cls(method=method, url=url, headers=headers, stream=stream)

    def add_header(self, name: Union[str, bytes], value: Union[str, bytes]) -> "Request":
        """Add a header to the request."""
        if isinstance(name, str):
            name = name.encode()
        if isinstance(value, str):
            value = value.encode()

        new_headers = self.headers + [(name, value)]
        return Request(method=self.method, url=self.url, headers=new_headers, stream=self.stream)

    def get_header(self, name: Union[str, bytes]) -> Optional[bytes]:
        """Get a header value by name (case-insensitive)."""
        return _find_header(self.headers, name)

    @property
    def scheme(self) -> bytes:
        """Get the URL scheme."""
        return self.url[0]

    @property
    def host(self) -> bytes:
        """Get the URL host."""
        return self.url[1]

    @property
    def port(self) -> int:
        """Get the URL port."""
        return self.url[2]

    @property
    def target(self) -> bytes:
        """Get the request target (path and query)."""
        return self.url[3]

    @property
    def full_url(self) -> str:
        """Get the absolute URL of the request."""
        return URLComponents(*self.url).to_url()


@dataclass(frozen=True)
class Response:
    """
    Immutable HTTP response representation.

    This class represents an HTTP response with status, headers,
    and a stream for the response body. The response itself is
    immutable, but the stream can be consumed asynchronously.
    """

    status_code: StatusCode
    headers: Headers = field(default_factory=list)
    stream: Optional[AsyncIterable[bytes]] = None
    extensions: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate response data after initialization."""
        if not isinstance(self.status_code, int):
            raise ValueError("status_code must be int")

        if not isinstance(self.headers, list):
            raise ValueError("headers must be a list")

        for name, value in self.headers:
            if not isinstance(name, bytes) or not isinstance(value, bytes):
                raise ValueError("header names and values must be bytes")

        if not isinstance(self.extensions, dict):
            raise ValueError("extensions must be a dict")

    @classmethod
    def create(
        cls,
        status_code: StatusCode,
        headers: Optional[Headers] = None,
        stream: Optional[AsyncIterable[bytes]] = None,
        extensions: Optional[Dict[str, Any]] = None,
    ) -> "Response":
        """
        Create a Response with proper validation.

        Args:
            status_code: HTTP status code
            headers: Optional list of (name, value) header tuples
            stream: Optional async iterable for response body
            extensions: Optional dict for additional data (reason phrase,
                http version)

        Returns:
            New Response instance
        """
        if headers is None:
            headers = []

        if extensions is None:
            extensions = {}

        return cls(
            status_code=status_code,
            headers=list(headers),
            stream=stream,
            extensions=extensions,
        )

    def get_header(self, name: Union[str, bytes]) -> Optional[bytes]:
        """Get a header value by name (case-insensitive)."""
        return _find_header(self.headers, name)

    def get_all_headers(self, name: Union[str, bytes]) -> List[bytes]:
        """Get every value of a repeated header, such as Set-Cookie."""
        if isinstance(name, str):
            name = name.encode()
        name_lower = name.lower()
        return [value for header_name, value in self.headers if header_name.lower() == name_lower]

    def has_header(self, name: Union[str, bytes]) -> bool:
        """Check if a header exists (case-insensitive)."""
        return self.get_header(name) is not None

    @property
    def reason(self) -> bytes:
        return self.extensions.get("reason_phrase", b"")

    @property
    def http_version(self) -> bytes:
        return self.extensions.get("http_version", b"1.1")

    def raw_headers(self) -> bytes:
        """Serialize the status line and headers as received."""
        lines = [b"HTTP/" + self.http_version + b" " + str(self.status_code).encode()]
        if self.reason:
            lines[0] += b" " + self.reason
        lines.extend(name + b": " + value for name, value in self.headers)
        return b"\r\n".join(lines) + b"\r\n\r\n"


def _find_header(headers: Headers, name: Union[str, bytes]) -> Optional[bytes]:
    if isinstance(name, str):
        name = name.encode()

    name_lower = name.lower()
    for header_name, header_value in headers:
        if header_name.lower() == name_lower:
            return header_value

    return None
