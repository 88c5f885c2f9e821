"""
Handles: reusable request configuration.

A handle carries options, custom headers and form fields for the
requests made with it, and owns the state that outlives a single
request: the cookie jar and the pool of keep-alive connections.
Resetting a handle clears the configuration but keeps that state.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from .connection_pool import ConnectionPool, TLSSettings
from .cookies import CookieJar, CookieRecord
from .exceptions import HandleBusyError, HandleOptionError
from .form import FormFile, FormData, FormValue
from .network import NetworkBackend
from .options import OPTIONS, validate_options

logger = logging.getLogger(__name__)


class Handle:
    """
    Request configuration plus per-handle cookies and connections.

    Args:
        backend: Network backend for the handle's connection pool
        **options: Initial options, see ``http_handle.options.OPTIONS``
    """

    def __init__(self, backend: Optional[NetworkBackend] = None, **options: Any) -> None:
        self._options: Dict[str, Any] = {}
        self._headers: Dict[str, str] = {}
        self._form: Optional[Dict[str, FormValue]] = None
        self._cookies = CookieJar()
        self._pool = ConnectionPool(backend=backend)
        self._busy = asyncio.Lock()
        self.last_result = None
        self.setopt(**options)

    def setopt(self, **options: Any) -> "Handle":
        """Merge options into the handle. A None value unsets an option."""
        for name, value in validate_options(options).items():
            if name == "httpheader":
                self._set_header_lines(value or ())
            elif value is None:
                self._options.pop(name, None)
            else:
                self._options[name] = value
        logger.debug(f"Handle options set: {sorted(options)}")
        return self

    def _set_header_lines(self, lines) -> None:
        for line in lines:
            name, sep, value = str(line).partition(":")
            if not sep:
                raise HandleOptionError(f"Malformed header line: {line!r}")
            self._headers[name.strip()] = value.strip()

    def setheaders(self, headers: Optional[Dict[str, Any]] = None, **kwargs: Any) -> "Handle":
        """
        Set request headers.

        Header names are case-insensitive; setting a header replaces any
        previous value. An empty value suppresses a default header such
        as Accept or User-Agent.
        """
        merged = dict(headers or {})
        merged.update(kwargs)
        for name, value in merged.items():
            existing = self._find_header(name)
            if existing is not None:
                del self._headers[existing]
            self._headers[name] = "" if value is None else str(value)
        return self

    def _find_header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key in self._headers:
            if key.lower() == lowered:
                return key
        return None

    def setform(self, **fields: FormValue) -> "Handle":
        """Set multipart form fields; the request becomes a POST."""
        for name, value in fields.items():
            if not isinstance(value, (str, bytes, FormFile, FormData)):
                raise HandleOptionError(
                    f"Form field {name!r} must be str, bytes, FormFile or FormData"
                )
        self._form = dict(fields)
        return self

    def reset(self) -> "Handle":
        """Clear options, headers and form; keep cookies and connections."""
        self._options.clear()
        self._headers.clear()
        self._form = None
        logger.debug("Handle reset")
        return self

    def getopt(self, name: str) -> Any:
        """Effective value of an option, falling back to its default."""
        key = name.lower()
        if key not in OPTIONS:
            raise HandleOptionError(f"Unknown option: {name}")
        return self._options.get(key, OPTIONS[key].default)

    @property
    def options(self) -> Dict[str, Any]:
        """Options explicitly set on the handle."""
        return dict(self._options)

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def form(self) -> Optional[Dict[str, FormValue]]:
        return dict(self._form) if self._form is not None else None

    @property
    def cookie_jar(self) -> CookieJar:
        return self._cookies

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def tls_settings(self) -> TLSSettings:
        return TLSSettings(
            verify_peer=self.getopt("ssl_verifypeer"),
            verify_host=self.getopt("ssl_verifyhost"),
            cafile=self.getopt("cainfo"),
        )

    def cookies(self):
        """Cookie records of the handle's jar."""
        return self._cookies.records()

    async def acquire(self) -> None:
        """Reserve the handle for one transfer."""
        if self._busy.locked():
            raise HandleBusyError("Handle is already performing a request")
        await self._busy.acquire()

    def release(self) -> None:
        if self._busy.locked():
            self._busy.release()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    async def close(self) -> None:
        """Close pooled connections."""
        await self._pool.close()

    async def __aenter__(self) -> "Handle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        state = "in use" if self.busy else "idle"
        return f"<Handle {state} options={sorted(self._options)} headers={sorted(self._headers)}>"


def new_handle(backend: Optional[NetworkBackend] = None, **options: Any) -> Handle:
    """Create a handle with the given options."""
    return Handle(backend=backend, **options)


def handle_setopt(handle: Handle, **options: Any) -> Handle:
    return handle.setopt(**options)


def handle_setheaders(handle: Handle, headers: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Handle:
    """Set request headers from a mapping, keyword arguments, or both."""
    return handle.setheaders(headers, **kwargs)


def handle_setform(handle: Handle, **fields: FormValue) -> Handle:
    return handle.setform(**fields)


def handle_reset(handle: Handle) -> Handle:
    return handle.reset()


def handle_cookies(handle: Handle) -> list:
    """Cookies stored in the handle's jar, as a list of CookieRecord."""
    return handle.cookies()


def handle_data(handle: Handle):
    """Result of the last completed request on the handle, without content."""
    result = handle.last_result
    if result is None:
        return None
    return result.without_content()


__all__ = [
    "Handle",
    "CookieRecord",
    "new_handle",
    "handle_setopt",
    "handle_setheaders",
    "handle_setform",
    "handle_reset",
    "handle_cookies",
    "handle_data",
]
