"""
http_handle - handle-based asyncio HTTP client

Requests are configured through reusable handles that keep cookies
and keep-alive connections between requests. Responses can be fetched
into memory, written to disk, or read incrementally from a streaming
connection.
"""

__version__ = "0.1.0"
__author__ = "Developer"
__email__ = "dev@example.com"

from .http_primitives import Request, Response
from .http11 import HTTP11Connection, ConnectionState
from .connection_pool import ConnectionPool, TLSSettings
from .exceptions import (
    HTTPHandleError,
    ConnectionError,
    SSLCertificateError,
    ProtocolError,
    TimeoutError,
    StreamError,
    HTTPStatusError,
    TooManyRedirects,
    HandleOptionError,
    HandleBusyError,
    InvalidURL,
)
from .form import FormData, FormFile, form_data, form_file
from .cookies import CookieRecord
from .handle import (
    Handle,
    new_handle,
    handle_setopt,
    handle_setheaders,
    handle_setform,
    handle_reset,
    handle_cookies,
    handle_data,
)
from .options import option_names
from .transfer import FetchResult
from .fetch import fetch_memory, fetch_disk, fetch_stream, download
from .connection import Connection, connect
from .multi import Multi
from .utilities import (
    nslookup,
    has_internet,
    parse_headers,
    parse_headers_dict,
    escape,
    unescape,
    version_info,
)

__all__ = [
    "Request",
    "Response",
    "HTTP11Connection",
    "ConnectionState",
    "ConnectionPool",
    "TLSSettings",
    "HTTPHandleError",
    "ConnectionError",
    "SSLCertificateError",
    "ProtocolError",
    "TimeoutError",
    "StreamError",
    "HTTPStatusError",
    "TooManyRedirects",
    "HandleOptionError",
    "HandleBusyError",
    "InvalidURL",
    "FormData",
    "FormFile",
    "form_data",
    "form_file",
    "CookieRecord",
    "Handle",
    "new_handle",
    "handle_setopt",
    "handle_setheaders",
    "handle_setform",
    "handle_reset",
    "handle_cookies",
    "handle_data",
    "option_names",
    "FetchResult",
    "fetch_memory",
    "fetch_disk",
    "fetch_stream",
    "download",
    "Connection",
    "connect",
    "Multi",
    "nslookup",
    "has_internet",
    "parse_headers",
    "parse_headers_dict",
    "escape",
    "unescape",
    "version_info",
]
