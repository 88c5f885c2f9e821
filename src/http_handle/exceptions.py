"""
Custom exceptions for http_handle.

This module defines the exception hierarchy used throughout
the library for error handling and debugging.
"""

from typing import Optional


class HTTPHandleError(Exception):
    """Base exception for all http_handle errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConnectionError(HTTPHandleError):
    """Raised when there's an error with network connections."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Connection error: {message}", cause)


class SSLCertificateError(ConnectionError):
    """Raised when the server certificate fails validation."""

    def __init__(self, host: str, cause: Optional[Exception] = None) -> None:
        detail = getattr(cause, "verify_message", None) or str(cause or "")
        message = f"SSL certificate problem for {host}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, cause)
        self.host = host


class ProtocolError(HTTPHandleError):
    """Raised when there's an error with HTTP protocol handling."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Protocol error: {message}", cause)


class TimeoutError(HTTPHandleError):
    """Raised when an operation times out."""

    def __init__(self, message: str, timeout: Optional[float] = None) -> None:
        if timeout is not None:
            message = f"{message} (timeout: {timeout}s)"
        super().__init__(f"Timeout error: {message}")


class StreamError(HTTPHandleError):
    """Raised when there's an error with stream operations."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Stream error: {message}", cause)


class HTTPStatusError(HTTPHandleError):
    """Raised by interfaces that refuse unsuccessful HTTP responses."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"HTTP error {status_code} for {url}")
        self.status_code = status_code
        self.url = url


class TooManyRedirects(HTTPHandleError):
    """Raised when a redirect chain exceeds the handle's maxredirs."""

    def __init__(self, url: str, max_redirects: int) -> None:
        super().__init__(
            f"Maximum ({max_redirects}) redirects followed, last location {url}"
        )
        self.url = url
        self.max_redirects = max_redirects


class HandleOptionError(HTTPHandleError):
    """Raised for unknown handle options or values of the wrong type."""


class HandleBusyError(HTTPHandleError):
    """Raised when a handle is used by two transfers at once."""


class InvalidURL(HTTPHandleError):
    """Raised for malformed URLs and schemes other than http and https."""

    def __init__(self, url: str, cause: Optional[Exception] = None) -> None:
        message = f"Invalid URL {url!r}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, cause)
        self.url = url
