"""
Tests for concurrent fetches.
"""

import asyncio

import pytest

from http_handle import Handle, Multi
from http_handle.exceptions import HTTPHandleError
from http_handle.network.mock import MockNetworkBackend

from conftest import build_response


class TestMulti:
    """Queueing and running concurrent requests."""

    @pytest.mark.asyncio
    async def test_run_reports_each_outcome(self, mock_backend) -> None:
        mock_backend.add_response("a.example.com", 80, build_response(body=b"A"))
        mock_backend.add_response("b.example.com", 80, build_response(404, b"B"))
        successes, failures = [], []

        async def on_done(result) -> None:
            successes.append((result.url, result.status_code))

        pool = Multi(total_con=2)
        pool.add("http://a.example.com/", done=on_done, handle=Handle(backend=mock_backend))
        pool.add("http://b.example.com/", done=on_done, handle=Handle(backend=mock_backend))
        pool.add("http://c.example.com/", fail=failures.append, handle=Handle(backend=mock_backend))
        assert pool.pending == 3

        counts = await pool.run()

        assert counts == {"success": 2, "error": 1, "pending": 0}
        assert sorted(successes) == [
            ("http://a.example.com/", 200),
            ("http://b.example.com/", 404),
        ]
        assert len(failures) == 1
        assert "closed unexpectedly" in failures[0]
        assert pool.pending == 0

    @pytest.mark.asyncio
    async def test_same_handle_twice(self, handle) -> None:
        pool = Multi()
        pool.add("http://example.com/1", handle=handle)

        with pytest.raises(HTTPHandleError, match="already queued"):
            pool.add("http://example.com/2", handle=handle)

    @pytest.mark.asyncio
    async def test_empty_run(self) -> None:
        assert await Multi().run() == {"success": 0, "error": 0, "pending": 0}

    @pytest.mark.asyncio
    async def test_timeout_keeps_requests_pending(self) -> None:
        class StallingBackend(MockNetworkBackend):
            async def connect_tcp(self, host, port, timeout=None, keepalive=True):
                await asyncio.sleep(10)

        handle = Handle(backend=StallingBackend())
        done = []
        pool = Multi()
        pool.add("http://example.com/slow", done=done.append, handle=handle)

        counts = await pool.run(timeout=0.05)

        assert counts == {"success": 0, "error": 0, "pending": 1}
        assert done == []
        assert pool.pending == 1
        assert not handle.busy

    @pytest.mark.asyncio
    async def test_redirect_to_unsupported_scheme_fails(self, handle, mock_backend) -> None:
        mock_backend.add_response(
            "example.com", 80, build_response(302, headers=[("Location", "ftp://example.com/file")])
        )
        done, failures = [], []
        pool = Multi()
        pool.add("http://example.com/", done=done.append, fail=failures.append, handle=handle)

        counts = await pool.run()

        assert counts == {"success": 0, "error": 1, "pending": 0}
        assert done == []
        assert "Unsupported URL scheme: ftp" in failures[0]
        assert not handle.busy

    def test_invalid_total_con(self) -> None:
        with pytest.raises(ValueError):
            Multi(total_con=0)
