"""
Source Resolver

Obtains raw image bytes for a closet item, trying in order:

  A. direct-url   the item's ``imageUrl``
  B. page-scrape  ``og:image`` / ``twitter:image`` of the item's ``purchaseUrl``
  C. generated    an AI image built from category, name and color

A and B failures are logged and fall through to the next strategy; a
generation failure is the item's failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from lookbook.catalog import CatalogItem
from lookbook.config import PipelineConfig
from lookbook.fetcher import BROWSER_USER_AGENT, IMAGE_USER_AGENT, FetchError, HttpFetcher
from lookbook.generator import GenerationError, ImageGenerator
from lookbook.image_processor import ImageDecodeError, probe_image
from lookbook.prompts import PromptBuilder
from lookbook.scraper import extract_meta_image, resolve_image_url

logger = logging.getLogger(__name__)

PAGE_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml",
}
IMAGE_HEADERS = {"User-Agent": IMAGE_USER_AGENT}


class Source(str, Enum):
    DIRECT_URL = "direct-url"
    PAGE_SCRAPE = "page-scrape"
    GENERATED = "generated"


@dataclass
class AcquiredImage:
    data: bytes
    source: Source
    width: int = 0
    height: int = 0
    prompt: str | None = None
    url: str | None = None


@dataclass
class SourcePlan:
    """What the resolver would try first for an item (dry-run preview)."""
    source: Source
    detail: str
    prompt: str | None = None


class StrategyFailed(Exception):
    """A single acquisition strategy produced no usable image."""


class SourceResolver:
    def __init__(self, config: PipelineConfig, fetcher: HttpFetcher,
                 prompts: PromptBuilder, generator: ImageGenerator | None = None):
        self.config = config
        self.fetcher = fetcher
        self.prompts = prompts
        self.generator = generator

    def plan(self, item: CatalogItem) -> SourcePlan:
        if item.image_url:
            return SourcePlan(Source.DIRECT_URL, item.image_url)
        if item.purchase_url:
            return SourcePlan(Source.PAGE_SCRAPE, item.purchase_url)
        prompt = self.prompts.build(item)
        return SourcePlan(Source.GENERATED, self.config.image_model, prompt=prompt)

    async def _fetch_image(self, url: str, min_width: int) -> AcquiredImage:
        try:
            data = await self.fetcher.fetch(url, timeout=self.config.direct_timeout,
                                            headers=IMAGE_HEADERS)
            width, height, fmt = await asyncio.to_thread(probe_image, data)
        except (FetchError, ImageDecodeError) as exc:
            raise StrategyFailed(str(exc)) from exc
        if width < min_width:
            raise StrategyFailed(f"image too small ({width}px wide, need {min_width}px)")
        logger.debug("Downloaded %dx%d %s from %s", width, height, fmt, url)
        return AcquiredImage(data, Source.DIRECT_URL, width, height, url=url)

    async def from_direct_url(self, item: CatalogItem) -> AcquiredImage:
        return await self._fetch_image(item.image_url, self.config.min_direct_width)

    async def from_page(self, item: CatalogItem) -> AcquiredImage:
        try:
            page = await self.fetcher.fetch_text(item.purchase_url,
                                                 timeout=self.config.page_timeout,
                                                 headers=PAGE_HEADERS)
        except FetchError as exc:
            raise StrategyFailed(f"page fetch failed: {exc}") from exc

        found = extract_meta_image(page)
        if not found:
            raise StrategyFailed("no og:image or twitter:image on page")
        image_url = resolve_image_url(found, item.purchase_url)
        logger.debug("%s: page image %s", item.name, image_url[:80])

        acquired = await self._fetch_image(image_url, self.config.min_scraped_width)
        acquired.source = Source.PAGE_SCRAPE
        return acquired

    async def generate(self, item: CatalogItem) -> AcquiredImage:
        if self.generator is None:
            raise GenerationError("image generation unavailable (OPENAI_API_KEY not set)")
        generated = await self.generator.generate(item)
        return AcquiredImage(generated.data, Source.GENERATED,
                             prompt=generated.prompt, url=generated.url)

    async def acquire(self, item: CatalogItem) -> AcquiredImage:
        """Run strategies A, B, C in order and return the first image.

        Raises:
            GenerationError: When both URL strategies are unavailable or
                failed and generation fails too.
        """
        if item.image_url:
            try:
                return await self.from_direct_url(item)
            except StrategyFailed as exc:
                logger.warning("%s: direct image failed: %s", item.name, exc)

        if item.purchase_url:
            try:
                return await self.from_page(item)
            except StrategyFailed as exc:
                logger.warning("%s: page scrape failed: %s", item.name, exc)

        if item.image_url or item.purchase_url:
            logger.warning("%s: URLs failed, falling back to generation", item.name)
        return await self.generate(item)
