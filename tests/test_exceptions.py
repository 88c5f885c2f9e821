"""
Unit tests for custom exceptions.

Tests the exception hierarchy to ensure proper error handling
and cause tracking.
"""

import ssl

import pytest

from http_handle.exceptions import (
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


class TestHTTPHandleError:
    """Test base HTTPHandleError class."""

    def test_basic_creation(self) -> None:
        error = HTTPHandleError("Test error message")
        assert str(error) == "Test error message"
        assert error.message == "Test error message"
        assert error.cause is None

    def test_with_cause(self) -> None:
        original_error = ValueError("Original error")
        error = HTTPHandleError("Test error message", cause=original_error)
        assert str(error) == "Test error message"
        assert error.cause == original_error


class TestConnectionError:
    """Test ConnectionError class."""

    def test_basic_creation(self) -> None:
        error = ConnectionError("Connection failed")
        assert error.message == "Connection error: Connection failed"
        assert error.cause is None

    def test_with_cause(self) -> None:
        original_error = OSError("Network unreachable")
        error = ConnectionError("Connection failed", cause=original_error)
        assert "Connection error: Connection failed" in str(error)
        assert error.cause == original_error


class TestSSLCertificateError:
    """Test certificate failures."""

    def test_message_mentions_certificate(self) -> None:
        cause = ssl.SSLCertVerificationError(
            1, "[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed: Hostname mismatch"
        )
        error = SSLCertificateError("203.0.113.7", cause=cause)
        assert "certificate" in str(error)
        assert "203.0.113.7" in str(error)
        assert error.host == "203.0.113.7"
        assert error.cause is cause

    def test_is_connection_error(self) -> None:
        assert issubclass(SSLCertificateError, ConnectionError)


class TestProtocolAndStreamErrors:
    """Test ProtocolError and StreamError prefixes."""

    def test_protocol_error(self) -> None:
        error = ProtocolError("Invalid HTTP version")
        assert error.message == "Protocol error: Invalid HTTP version"

    def test_stream_error(self) -> None:
        original_error = IOError("Broken pipe")
        error = StreamError("Stream closed unexpectedly", cause=original_error)
        assert "Stream error: Stream closed unexpectedly" in str(error)
        assert error.cause == original_error


class TestTimeoutError:
    """Test TimeoutError class."""

    def test_basic_creation(self) -> None:
        error = TimeoutError("Request timed out")
        assert error.message == "Timeout error: Request timed out"

    def test_with_timeout_value(self) -> None:
        error = TimeoutError("Request timed out", timeout=30.0)
        assert error.message == "Timeout error: Request timed out (timeout: 30.0s)"


class TestHTTPErrors:
    """Test status and redirect errors."""

    def test_status_error(self) -> None:
        error = HTTPStatusError(404, "http://example.com/missing")
        assert error.status_code == 404
        assert error.url == "http://example.com/missing"
        assert "404" in str(error)

    def test_too_many_redirects(self) -> None:
        error = TooManyRedirects("http://example.com/loop", 3)
        assert error.max_redirects == 3
        assert "Maximum (3) redirects" in str(error)

    def test_invalid_url(self) -> None:
        cause = ValueError("Unsupported URL scheme: ftp")
        error = InvalidURL("ftp://example.com/file", cause=cause)
        assert error.url == "ftp://example.com/file"
        assert error.cause is cause
        assert "Unsupported URL scheme: ftp" in str(error)


class TestExceptionHierarchy:
    """Test exception hierarchy and inheritance."""

    def test_inheritance(self) -> None:
        for cls in (
            ConnectionError,
            ProtocolError,
            TimeoutError,
            StreamError,
            HTTPStatusError,
            TooManyRedirects,
            HandleOptionError,
            HandleBusyError,
            InvalidURL,
        ):
            assert issubclass(cls, HTTPHandleError)

    def test_exception_raising(self) -> None:
        with pytest.raises(HTTPHandleError, match="Connection error: refused"):
            raise ConnectionError("refused")

        with pytest.raises(TimeoutError, match=r"\(timeout: 60.0s\)"):
            raise TimeoutError("Operation timed out", timeout=60.0)
