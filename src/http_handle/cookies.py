"""
Per-handle cookie jar.

Cookie storage and matching rules come from ``http.cookiejar``; the
adapters below present our Request/Response primitives in the shape
that module expects.
"""

import logging
import time
from datetime import datetime, timezone
from http.cookiejar import CookieJar as _StdCookieJar, DefaultCookiePolicy
from typing import Iterator, List, NamedTuple, Optional
from urllib.parse import urlsplit

from .http_primitives import Request, Response

logger = logging.getLogger(__name__)


class CookieRecord(NamedTuple):
    """One cookie, in Netscape cookie-file field order."""
    domain: str
    flag: bool
    path: str
    secure: bool
    expiration: Optional[datetime]
    name: str
    value: str


class _CookieRequest:
    """Wraps a Request for http.cookiejar."""

    def __init__(self, request: Request) -> None:
        self._request = request
        self._url = request.full_url
        parsed = urlsplit(self._url)
        self.type = parsed.scheme
        self.host = parsed.netloc
        self.origin_req_host = parsed.hostname or ""
        self.unverifiable = False
        self._new_headers = {}

    def get_full_url(self) -> str:
        return self._url

    def get_host(self) -> str:
        return self.host

    def get_type(self) -> str:
        return self.type

    def get_origin_req_host(self) -> str:
        return self.origin_req_host

    def is_unverifiable(self) -> bool:
        return self.unverifiable

    def has_header(self, name: str) -> bool:
        return self._request.get_header(name) is not None or name in self._new_headers

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self._request.get_header(name)
        if value is None:
            return self._new_headers.get(name, default)
        return value.decode("latin-1")

    def add_unredirected_header(self, name: str, value: str) -> None:
        self._new_headers[name] = value

    def get_new_headers(self):
        return self._new_headers


class _CookieHeaders:
    def __init__(self, response: Response) -> None:
        self._response = response

    def get_all(self, name: str, default=None):
        values = self._response.get_all_headers(name)
        if not values:
            return default
        return [v.decode("latin-1") for v in values]


class _CookieResponse:
    """Wraps a Response for http.cookiejar."""

    def __init__(self, response: Response) -> None:
        self._headers = _CookieHeaders(response)

    def info(self) -> _CookieHeaders:
        return self._headers


class CookieJar:
    """Cookies received from and sent to servers by one handle."""

    def __init__(self) -> None:
        self._jar = _StdCookieJar(DefaultCookiePolicy())

    def extract(self, request: Request, response: Response) -> None:
        """Store cookies set by a response to the given request."""
        if not response.has_header(b"set-cookie"):
            return
        before = len(self)
        self._jar.extract_cookies(_CookieResponse(response), _CookieRequest(request))
        logger.debug(f"Cookie jar now holds {len(self)} cookies (was {before})")

    def cookie_header(self, request: Request) -> Optional[bytes]:
        """Cookie header value for a request, None when no cookie matches."""
        wrapped = _CookieRequest(request)
        self._jar.add_cookie_header(wrapped)
        value = wrapped.get_new_headers().get("Cookie")
        return value.encode("latin-1") if value else None

    def records(self) -> List[CookieRecord]:
        """All unexpired cookies as records."""
        self._jar.clear_expired_cookies()
        return [self._record(cookie) for cookie in self._jar]

    def _record(self, cookie) -> CookieRecord:
        expiration = None
        if cookie.expires is not None:
            expiration = datetime.fromtimestamp(cookie.expires, tz=timezone.utc)
        return CookieRecord(
            domain=cookie.domain,
            flag=cookie.domain.startswith("."),
            path=cookie.path,
            secure=bool(cookie.secure),
            expiration=expiration,
            name=cookie.name,
            value=cookie.value if cookie.value is not None else "",
        )

    def clear(self, domain: Optional[str] = None) -> None:
        if domain is None:
            self._jar.clear()
        else:
            self._jar.clear(domain)

    def __iter__(self) -> Iterator[CookieRecord]:
        return iter(self.records())

    def __len__(self) -> int:
        now = time.time()
        return sum(1 for cookie in self._jar if not cookie.is_expired(now))
