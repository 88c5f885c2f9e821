"""
Handle-based client example using http_handle.

This example walks through the main interfaces: in-memory fetches,
downloads, streaming connections, handle options, cookies and
multipart forms. It talks to httpbin.org and needs network access.
"""

import asyncio
import logging
import os
import tempfile

from http_handle import (
    HTTPStatusError,
    Multi,
    connect,
    download,
    fetch_disk,
    fetch_memory,
    form_data,
    handle_cookies,
    handle_data,
    new_handle,
    parse_headers_dict,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def memory_fetch():
    """An in-memory fetch returns the status instead of raising."""
    async with new_handle() as handle:
        result = await fetch_memory("https://httpbin.org/status/418", handle)
        logger.info(f"Status {result.status_code}, {len(result.content)} bytes")

        result = await fetch_memory("https://httpbin.org/get", handle)
        headers = parse_headers_dict(result.headers)
        logger.info(f"Content-Type: {headers.get('content-type')}")
        logger.info(f"Timings: {result.times}")


async def downloads():
    """download refuses error responses; fetch_disk does not."""
    with tempfile.TemporaryDirectory() as tmp:
        path = await download("https://httpbin.org/bytes/1024", os.path.join(tmp, "bytes.bin"))
        logger.info(f"Downloaded {os.path.getsize(path)} bytes to {path}")

        try:
            await download("https://httpbin.org/status/404", os.path.join(tmp, "missing"))
        except HTTPStatusError as e:
            logger.info(f"download failed as expected: {e}")

        result = await fetch_disk("https://httpbin.org/status/404", os.path.join(tmp, "error"))
        logger.info(f"fetch_disk wrote the {result.status_code} body to {result.content}")


async def streaming():
    """Read a response line by line."""
    async with connect("https://httpbin.org/stream/10") as con:
        first = await con.readline()
        logger.info(f"First line: {first[:60]}...")
        rest = await con.readlines()
        logger.info(f"{len(rest)} more lines")


async def handle_configuration():
    """Options, headers, cookies and forms on one handle."""
    async with new_handle(useragent="http_handle-example", timeout=30) as handle:
        handle.setheaders({"X-Example": "1"})

        await fetch_memory("https://httpbin.org/cookies/set?flavour=oatmeal", handle)
        for cookie in handle_cookies(handle):
            logger.info(f"Cookie {cookie.name}={cookie.value} for {cookie.domain}")

        handle.reset()
        handle.setform(name="value", payload=form_data('{"a": 1}', "application/json"))
        result = await fetch_memory("https://httpbin.org/post", handle)
        logger.info(f"Form POST -> {result.status_code}")
        logger.info(f"Last request: {handle_data(handle).url}")


async def concurrent():
    """Several requests at once, reported through callbacks."""
    pool = Multi(total_con=4)
    for delay in (1, 2, 3):
        pool.add(
            f"https://httpbin.org/delay/{delay}",
            done=lambda r: logger.info(f"{r.url} done in {r.times['total']:.2f}s"),
            fail=lambda msg: logger.info(f"failed: {msg}"),
        )
    counts = await pool.run(timeout=10)
    logger.info(f"Multi run: {counts}")


async def main():
    """Run all examples."""
    logger.info("Starting http_handle examples")

    await memory_fetch()
    await downloads()
    await streaming()
    await handle_configuration()
    await concurrent()

    logger.info("All examples completed")


if __name__ == "__main__":
    asyncio.run(main())
