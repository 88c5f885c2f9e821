"""
Handle option table.

Every option a handle accepts is declared here with its accepted types
and default value. Options not listed are rejected, so misspelled
option names fail loudly instead of being ignored.
"""

from typing import Any, Dict, NamedTuple, Tuple

from . import __version__
from .exceptions import HandleOptionError


class OptionSpec(NamedTuple):
    types: Tuple[type, ...]
    default: Any
    doc: str


_BOOL = (bool, int)
_NUMBER = (int, float)

OPTIONS: Dict[str, OptionSpec] = {
    "ssl_verifypeer": OptionSpec(_BOOL, True, "verify the server certificate chain"),
    "ssl_verifyhost": OptionSpec(_BOOL, True, "verify the certificate names the requested host"),
    "cainfo": OptionSpec((str,), None, "path to a CA bundle"),
    "timeout": OptionSpec(_NUMBER, 0, "total transfer timeout in seconds, 0 for none"),
    "connecttimeout": OptionSpec(_NUMBER, 10, "connect and TLS handshake timeout in seconds"),
    "followlocation": OptionSpec(_BOOL, True, "follow 3xx redirects"),
    "maxredirs": OptionSpec((int,), 10, "maximum redirects to follow"),
    "useragent": OptionSpec((str,), f"http_handle/{__version__}", "User-Agent header"),
    "customrequest": OptionSpec((str,), None, "request method override"),
    "post": OptionSpec(_BOOL, False, "send a POST request"),
    "postfields": OptionSpec((str, bytes), None, "request body, implies POST"),
    "nobody": OptionSpec(_BOOL, False, "send a HEAD request"),
    "accept_encoding": OptionSpec((str,), "gzip, deflate", "Accept-Encoding header, empty to disable"),
    "referer": OptionSpec((str,), None, "Referer header"),
    "cookie": OptionSpec((str,), None, "extra raw Cookie header value"),
    "httpheader": OptionSpec((list, tuple), None, "request headers as 'Name: value' lines"),
    "range": OptionSpec((str,), None, "byte range, e.g. '0-99'"),
    "username": OptionSpec((str,), None, "basic auth user name"),
    "password": OptionSpec((str,), None, "basic auth password"),
    "failonerror": OptionSpec(_BOOL, False, "raise on HTTP status >= 400"),
    "verbose": OptionSpec(_BOOL, False, "log request and response headers"),
    "tcp_keepalive": OptionSpec(_BOOL, True, "enable TCP keep-alive on new connections"),
}


def validate_option(name: str, value: Any) -> Any:
    """
    Check a single option and normalize its value.

    Raises:
        HandleOptionError: For unknown names or values of the wrong type
    """
    key = name.lower()
    spec = OPTIONS.get(key)
    if spec is None:
        raise HandleOptionError(f"Unknown option: {name}")

    if value is None:
        return None

    if not isinstance(value, spec.types):
        expected = " or ".join(t.__name__ for t in spec.types)
        raise HandleOptionError(
            f"Option {name} expects {expected}, got {type(value).__name__}"
        )

    if spec.types is _BOOL:
        return bool(value)
    if key in ("timeout", "connecttimeout") and value < 0:
        raise HandleOptionError(f"Option {name} must be non-negative")
    if key == "maxredirs" and value < 0:
        raise HandleOptionError("Option maxredirs must be non-negative")
    return value


def validate_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a mapping of options, returning lower-cased names."""
    return {name.lower(): validate_option(name, value) for name, value in options.items()}


def option_names():
    """Names of all supported options."""
    return sorted(OPTIONS)
