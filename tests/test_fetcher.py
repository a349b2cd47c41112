"""Tests for HttpFetcher against an in-process aiohttp server."""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from lookbook.fetcher import FetchError, HttpFetcher

from helpers import image_bytes

IMAGE = image_bytes(200, 200)


def _app() -> web.Application:
    async def image(request):
        return web.Response(body=IMAGE, content_type="image/jpeg")

    async def page(request):
        ua = request.headers.get("User-Agent", "")
        return web.Response(text=f"<html><body>{ua}</body></html>", content_type="text/html")

    async def moved(request):
        raise web.HTTPFound("/image")

    async def missing(request):
        return web.Response(status=404, text="nope")

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="late")

    app = web.Application()
    app.router.add_get("/image", image)
    app.router.add_get("/page", page)
    app.router.add_get("/moved", moved)
    app.router.add_get("/missing", missing)
    app.router.add_get("/slow", slow)
    return app


def _run(scenario):
    async def wrapper():
        async with TestServer(_app()) as server:
            async with HttpFetcher() as fetcher:
                return await scenario(server, fetcher)
    return asyncio.run(wrapper())


def test_fetch_bytes():
    async def scenario(server, fetcher):
        return await fetcher.fetch(str(server.make_url("/image")), timeout=5)
    assert _run(scenario) == IMAGE


def test_follows_redirects():
    async def scenario(server, fetcher):
        return await fetcher.fetch(str(server.make_url("/moved")), timeout=5)
    assert _run(scenario) == IMAGE


def test_fetch_text_sends_headers():
    async def scenario(server, fetcher):
        return await fetcher.fetch_text(str(server.make_url("/page")), timeout=5,
                                        headers={"User-Agent": "LookbookTest/1.0"})
    assert "LookbookTest/1.0" in _run(scenario)


def test_non_2xx_raises_fetch_error():
    async def scenario(server, fetcher):
        with pytest.raises(FetchError, match="HTTP 404"):
            await fetcher.fetch(str(server.make_url("/missing")), timeout=5)
    _run(scenario)


def test_timeout_raises_fetch_error():
    async def scenario(server, fetcher):
        with pytest.raises(FetchError, match="timed out"):
            await fetcher.fetch(str(server.make_url("/slow")), timeout=0.2)
    _run(scenario)


def test_connection_error_raises_fetch_error():
    async def scenario(server, fetcher):
        with pytest.raises(FetchError):
            await fetcher.fetch("http://127.0.0.1:9/unreachable", timeout=2)
    _run(scenario)


def test_used_outside_context():
    async def scenario():
        await HttpFetcher().fetch("http://example.invalid/", timeout=1)
    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
