"""
Helpers that accompany the fetch interfaces: name lookup, raw
header parsing and percent-encoding.
"""

import asyncio
import logging
import socket
import ssl
from typing import Dict, List, Optional, Union
from urllib.parse import quote, unquote

import h11

from . import __version__
from .network.utils import resolve_host

logger = logging.getLogger(__name__)


async def nslookup(host: str, ipv4_only: bool = False, error: bool = True) -> Optional[str]:
    """
    Resolve a host name to its first address.

    Args:
        host: Host name
        ipv4_only: Only consider IPv4 addresses
        error: Raise when resolution fails instead of returning None

    Raises:
        socket.gaierror: If the name does not resolve and ``error`` is set
    """
    try:
        addresses = await resolve_host(host, ipv4_only=ipv4_only)
    except socket.gaierror:
        if error:
            raise
        logger.debug(f"Could not resolve {host}")
        return None
    return addresses[0] if addresses else None


async def has_internet(host: str = "google.com", timeout: float = 5.0) -> bool:
    """Whether a well-known name resolves, as a cheap connectivity check."""
    try:
        return await asyncio.wait_for(nslookup(host, error=False), timeout) is not None
    except asyncio.TimeoutError:
        return False


def _header_blocks(raw: Union[bytes, str]) -> List[List[str]]:
    if isinstance(raw, bytes):
        raw = raw.decode("latin-1")

    blocks: List[List[str]] = []
    current: List[str] = []
    for line in raw.splitlines():
        if not line.strip():
            if current:
                blocks.append(current)
                current = []
            continue
        if line.startswith("HTTP/") and current:
            blocks.append(current)
            current = []
        current.append(line)
    if current:
        blocks.append(current)
    return blocks


def parse_headers(raw: Union[bytes, str], multiple: bool = False):
    """
    Split a raw header block into lines.

    ``raw`` may hold several responses (a redirect chain); only the last
    response's lines are returned unless ``multiple`` is set, in which
    case one list per response is returned.
    """
    blocks = _header_blocks(raw)
    if multiple:
        return blocks
    return blocks[-1] if blocks else []


def parse_headers_dict(raw: Union[bytes, str]) -> Dict[str, Union[str, List[str]]]:
    """
    Parse the last response's headers into a dict.

    Names are lower-cased; repeated headers map to a list of values.
    """
    result: Dict[str, Union[str, List[str]]] = {}
    for line in parse_headers(raw):
        if line.startswith("HTTP/"):
            continue
        name, sep, value = line.partition(":")
        if not sep:
            continue
        name = name.strip().lower()
        value = value.strip()
        if name in result:
            existing = result[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[name] = [existing, value]
        else:
            result[name] = value
    return result


def escape(text: str) -> str:
    """Percent-encode everything except unreserved characters."""
    return quote(text, safe="-._~")


def unescape(text: str) -> str:
    """Decode percent-encoded text."""
    return unquote(text)


def version_info() -> Dict[str, object]:
    """Library and protocol support information."""
    return {
        "version": __version__,
        "h11_version": h11.__version__,
        "ssl_version": ssl.OPENSSL_VERSION,
        "protocols": ["http", "https"],
        "http_versions": ["1.1"],
        "content_encodings": ["gzip", "deflate"],
    }
