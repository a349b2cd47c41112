"""Tests for the direct-url / page-scrape / generated source chain."""

import asyncio

import pytest

from lookbook.catalog import CatalogItem
from lookbook.config import PipelineConfig
from lookbook.generator import GenerationError
from lookbook.prompts import PromptBuilder
from lookbook.resolver import Source, SourceResolver

from helpers import FakeFetcher, FakeGenerator, image_bytes, oversized_png

SHOP = "https://shop.example/products/loafer"
PAGE = '<html><head><meta property="og:image" content="/img/loafer.jpg"></head></html>'


def _item(**fields):
    defaults = dict(id="x", name="Tassel Loafers", category="shoes", color="Navy")
    defaults.update(fields)
    return CatalogItem(**defaults)


def _resolver(responses, with_generator=True):
    fetcher = FakeFetcher(responses)
    prompts = PromptBuilder()
    generator = FakeGenerator(prompts) if with_generator else None
    return SourceResolver(PipelineConfig(), fetcher, prompts, generator), fetcher, generator


def test_direct_url_wins():
    resolver, fetcher, generator = _resolver({"https://cdn.example/a.jpg": image_bytes(600, 600)})
    item = _item(image_url="https://cdn.example/a.jpg", purchase_url=SHOP)
    acquired = asyncio.run(resolver.acquire(item))
    assert acquired.source is Source.DIRECT_URL
    assert (acquired.width, acquired.height) == (600, 600)
    assert fetcher.calls == ["https://cdn.example/a.jpg"]
    assert generator.calls == []


def test_undersized_direct_image_falls_through_to_page():
    resolver, fetcher, generator = _resolver({
        "https://cdn.example/tiny.jpg": image_bytes(40, 40),
        SHOP: PAGE,
        "https://shop.example/img/loafer.jpg": image_bytes(400, 400),
    })
    item = _item(image_url="https://cdn.example/tiny.jpg", purchase_url=SHOP)
    acquired = asyncio.run(resolver.acquire(item))
    assert acquired.source is Source.PAGE_SCRAPE
    assert acquired.url == "https://shop.example/img/loafer.jpg"
    assert fetcher.calls == ["https://cdn.example/tiny.jpg", SHOP,
                             "https://shop.example/img/loafer.jpg"]
    assert generator.calls == []


def test_non_image_direct_response_falls_through():
    resolver, _, _ = _resolver({
        "https://cdn.example/a.jpg": "<html>login required</html>",
        SHOP: PAGE,
        "https://shop.example/img/loafer.jpg": image_bytes(400, 400),
    })
    item = _item(image_url="https://cdn.example/a.jpg", purchase_url=SHOP)
    assert asyncio.run(resolver.acquire(item)).source is Source.PAGE_SCRAPE


def test_oversized_direct_image_falls_through_to_page():
    resolver, _, generator = _resolver({
        "https://cdn.example/huge.png": oversized_png(),
        SHOP: PAGE,
        "https://shop.example/img/loafer.jpg": image_bytes(400, 400),
    })
    item = _item(image_url="https://cdn.example/huge.png", purchase_url=SHOP)
    assert asyncio.run(resolver.acquire(item)).source is Source.PAGE_SCRAPE
    assert generator.calls == []


def test_scraped_image_needs_100px():
    resolver, _, generator = _resolver({
        SHOP: PAGE,
        "https://shop.example/img/loafer.jpg": image_bytes(80, 80),
    })
    acquired = asyncio.run(resolver.acquire(_item(purchase_url=SHOP)))
    assert acquired.source is Source.GENERATED
    assert len(generator.calls) == 1


def test_page_without_meta_falls_back_to_generation():
    resolver, _, generator = _resolver({SHOP: "<html><body>Sold out</body></html>"})
    acquired = asyncio.run(resolver.acquire(_item(purchase_url=SHOP)))
    assert acquired.source is Source.GENERATED
    assert generator.calls[0][0] == "x"


def test_no_urls_generates_from_name_and_color():
    resolver, fetcher, generator = _resolver({})
    acquired = asyncio.run(resolver.acquire(_item()))
    assert acquired.source is Source.GENERATED
    assert fetcher.calls == []
    prompt = generator.calls[0][1]
    assert "Tassel Loafers" in prompt
    assert "Navy" in prompt
    assert acquired.prompt == prompt


def test_generation_unavailable_without_generator():
    resolver, _, _ = _resolver({}, with_generator=False)
    with pytest.raises(GenerationError, match="OPENAI_API_KEY"):
        asyncio.run(resolver.acquire(_item()))


def test_generation_failure_is_item_failure():
    resolver, _, generator = _resolver({})
    generator.fail_for.add("x")
    with pytest.raises(GenerationError):
        asyncio.run(resolver.acquire(_item(image_url="https://cdn.example/gone.jpg")))


class TestPlan:
    def test_direct(self):
        resolver, _, _ = _resolver({})
        plan = resolver.plan(_item(image_url="https://cdn.example/a.jpg", purchase_url=SHOP))
        assert plan.source is Source.DIRECT_URL
        assert plan.detail == "https://cdn.example/a.jpg"

    def test_page(self):
        resolver, _, _ = _resolver({})
        assert resolver.plan(_item(purchase_url=SHOP)).source is Source.PAGE_SCRAPE

    def test_generated_includes_prompt(self):
        resolver, fetcher, _ = _resolver({})
        plan = resolver.plan(_item())
        assert plan.source is Source.GENERATED
        assert plan.detail == "dall-e-3"
        assert "Tassel Loafers" in plan.prompt
        assert fetcher.calls == []
