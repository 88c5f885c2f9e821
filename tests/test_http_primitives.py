"""
Unit tests for HTTP primitives.

Tests the Request, Response, and URLComponents classes
to ensure they work correctly and maintain immutability.
"""

import pytest
import dataclasses

from http_handle.http_primitives import (
    Request,
    Response,
    URLComponents,
    resolve_location,
)


class TestURLComponents:
    """Test URLComponents class functionality."""

    def test_from_url_with_http(self) -> None:
        url = URLComponents.from_url("http://example.com/path")
        assert url.scheme == b"http"
        assert url.host == b"example.com"
        assert url.port == 80
        assert url.target == b"/path"

    def test_from_url_with_https_and_port(self) -> None:
        url = URLComponents.from_url("https://example.com:8443/api/v1")
        assert url.scheme == b"https"
        assert url.port == 8443
        assert url.target == b"/api/v1"

    def test_query_kept_fragment_dropped(self) -> None:
        url = URLComponents.from_url("http://example.com/search?q=1&page=2#top")
        assert url.target == b"/search?q=1&page=2"

    def test_from_url_without_path(self) -> None:
        url = URLComponents.from_url("https://example.com")
        assert url.port == 443
        assert url.target == b"/"

    def test_host_is_lowercased(self) -> None:
        url = URLComponents.from_url("http://EXAMPLE.com/")
        assert url.host == b"example.com"

    def test_unsupported_scheme(self) -> None:
        with pytest.raises(ValueError, match="Unsupported URL scheme"):
            URLComponents.from_url("ftp://example.com/file")

    def test_missing_host(self) -> None:
        with pytest.raises(ValueError, match="No hostname"):
            URLComponents.from_url("http:///path")

    def test_authority_omits_default_port(self) -> None:
        assert URLComponents.from_url("https://example.com:443/").authority == b"example.com"
        assert URLComponents.from_url("http://example.com:8080/").authority == b"example.com:8080"

    def test_ipv6_authority(self) -> None:
        url = URLComponents.from_url("http://[::1]:8080/")
        assert url.host == b"::1"
        assert url.authority == b"[::1]:8080"

    def test_to_url_round_trip(self) -> None:
        url = "https://example.com:8443/a/b?x=1"
        assert URLComponents.from_url(url).to_url() == url


class TestResolveLocation:
    def test_relative(self) -> None:
        assert resolve_location("http://example.com/a/b", "c") == "http://example.com/a/c"

    def test_absolute_path(self) -> None:
        assert resolve_location("http://example.com/a/b", "/login") == "http://example.com/login"

    def test_absolute_url(self) -> None:
        assert resolve_location("http://example.com/", "https://other.org/x") == "https://other.org/x"


class TestRequest:
    """Test Request class functionality."""

    def test_create_with_strings(self) -> None:
        request = Request.create("GET", "http://example.com/api")
        assert request.method == b"GET"
        assert request.url == (b"http", b"example.com", 80, b"/api")
        assert request.headers == []
        assert request.stream is None

    def test_create_with_tuple(self) -> None:
        request = Request.create(b"POST", (b"https", b"api.example.com", 443, b"/data"))
        assert request.method == b"POST"
        assert request.full_url == "https://api.example.com/data"

    def test_invalid_url_type(self) -> None:
        with pytest.raises(ValueError):
            Request.create("GET", 42)

    def test_invalid_headers(self) -> None:
        with pytest.raises(ValueError, match="header names and values must be bytes"):
            Request(method=b"GET", url=(b"http", b"example.com", 80, b"/"), headers=[("a", "b")])

    def test_add_header_returns_new_request(self, sample_headers) -> None:
        request = Request.create("GET", "http://example.com/", headers=sample_headers)
        updated = request.add_header("X-Trace", "abc")
        assert updated is not request
        assert updated.get_header("x-trace") == b"abc"
        assert request.get_header("x-trace") is None

    def test_immutability(self) -> None:
        request = Request.create("GET", "http://example.com/")
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.method = b"POST"


class TestResponse:
    """Test Response class functionality."""

    def test_create(self) -> None:
        response = Response.create(200, headers=[(b"Content-Type", b"text/plain")])
        assert response.status_code == 200
        assert response.get_header("content-type") == b"text/plain"
        assert response.has_header(b"CONTENT-TYPE")
        assert not response.has_header("location")

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="status_code must be int"):
            Response(status_code="200")

    def test_get_all_headers(self) -> None:
        response = Response.create(
            200,
            headers=[
                (b"Set-Cookie", b"a=1"),
                (b"Content-Type", b"text/plain"),
                (b"set-cookie", b"b=2"),
            ],
        )
        assert response.get_all_headers("Set-Cookie") == [b"a=1", b"b=2"]

    def test_raw_headers(self) -> None:
        response = Response.create(
            404,
            headers=[(b"Content-Length", b"0")],
            extensions={"reason_phrase": b"Not Found", "http_version": b"1.1"},
        )
        assert response.raw_headers() == b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\n\r\n"
