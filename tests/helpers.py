"""Shared test doubles: synthetic images, fake fetcher and generator."""

import asyncio
import json
import struct
import zlib
from io import BytesIO

from PIL import Image

from lookbook.fetcher import FetchError
from lookbook.generator import GeneratedImage


def image_bytes(width=500, height=500, fmt="JPEG", color=(180, 40, 40), mode="RGB"):
    img = Image.new(mode, (width, height), color)
    buf = BytesIO()
    img.save(buf, fmt)
    return buf.getvalue()


def oversized_png(width=20000, height=20000):
    """A tiny PNG whose header claims *width* x *height* pixels."""
    data = bytearray(image_bytes(10, 10, "PNG"))
    # IHDR payload starts after the 8-byte signature and 8-byte chunk header
    data[16:24] = struct.pack(">II", width, height)
    data[29:33] = struct.pack(">I", zlib.crc32(bytes(data[12:29])))
    return bytes(data)


def write_catalog(path, records):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(records, f, indent=2, ensure_ascii=False)
        f.write("\n")


class FakeFetcher:
    """Serves canned responses by URL; unknown URLs raise FetchError (404)."""

    def __init__(self, responses=None, delay=0.0):
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def _lookup(self, url, timeout, headers):
        self.calls.append(url)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if url not in self.responses:
                raise FetchError(url, "HTTP 404")
            value = self.responses[url]
            if isinstance(value, Exception):
                raise value
            return value
        finally:
            self.in_flight -= 1

    async def fetch(self, url, timeout, headers=None):
        value = await self._lookup(url, timeout, headers)
        return value.encode("utf-8") if isinstance(value, str) else value

    async def fetch_text(self, url, timeout, headers=None):
        value = await self._lookup(url, timeout, headers)
        return value.decode("utf-8") if isinstance(value, bytes) else value


class FakeGenerator:
    """Stands in for ImageGenerator; returns a solid image per call."""

    def __init__(self, prompts, fail_for=(), delay=0.0):
        self.prompts = prompts
        self.fail_for = set(fail_for)
        self.delay = delay
        self.calls = []
        self.closed = False

    async def aclose(self):
        self.closed = True

    async def generate(self, item, prompt=None):
        prompt = prompt or self.prompts.build(item)
        self.calls.append((item.id, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if item.id in self.fail_for:
            from lookbook.generator import GenerationError
            raise GenerationError("generation failed after 3 attempt(s): boom")
        return GeneratedImage(
            data=image_bytes(1024, 1024, "PNG", color=(90, 90, 200)),
            prompt=prompt,
            url=f"https://images.example/{item.id}.png",
            attempts=1,
        )
