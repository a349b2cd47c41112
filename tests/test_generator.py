"""Tests for the DALL-E generation state machine."""

import asyncio
from types import SimpleNamespace

import pytest

from lookbook.catalog import CatalogItem
from lookbook.config import PipelineConfig
from lookbook.generator import (
    GenerationError,
    ImageGenerator,
    is_content_policy_error,
)
from lookbook.prompts import PromptBuilder

from helpers import FakeFetcher, image_bytes

IMAGE_URL = "https://oaidalle.example/img-1.png"


class PolicyError(Exception):
    code = "content_policy_violation"


class FakeImages:
    """Plays back a scripted list of outcomes, one per generate() call."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.prompts = []
        self.kwargs = []

    async def generate(self, **kwargs):
        self.prompts.append(kwargs["prompt"])
        self.kwargs.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(data=[SimpleNamespace(url=IMAGE_URL, revised_prompt=outcome)])


class FakeClient:
    def __init__(self, outcomes):
        self.images = FakeImages(outcomes)


def _item():
    return CatalogItem(id="c", name="Sherwani (Indian formal coat)", category="jackets",
                       color="Cream", brand="Manyavar")


def _generator(outcomes, **config):
    delays = []

    async def sleep(delay):
        delays.append(delay)

    client = FakeClient(outcomes)
    fetcher = FakeFetcher({IMAGE_URL: image_bytes(1024, 1024, "PNG")})
    gen = ImageGenerator(PipelineConfig(**config), client, fetcher, PromptBuilder(), sleep=sleep)
    return gen, client, fetcher, delays


def test_success_first_attempt():
    gen, client, fetcher, delays = _generator(["revised"])
    result = asyncio.run(gen.generate(_item()))
    assert result.attempts == 1
    assert result.url == IMAGE_URL
    assert result.revised_prompt == "revised"
    assert not result.sanitized
    assert fetcher.calls == [IMAGE_URL]
    assert delays == []
    kwargs = client.images.kwargs[0]
    assert kwargs["model"] == "dall-e-3"
    assert kwargs["size"] == "1024x1024"
    assert kwargs["n"] == 1


def test_content_policy_retries_sanitized_without_delay():
    gen, client, _, delays = _generator([PolicyError("blocked"), None])
    result = asyncio.run(gen.generate(_item()))
    assert result.sanitized
    assert result.attempts == 2
    assert delays == []
    first, second = client.images.prompts
    assert "Manyavar" in first
    assert "Manyavar" not in second
    assert "(" not in second.split(". ")[0]


def test_second_content_policy_rejection_fails():
    gen, client, _, _ = _generator([PolicyError("blocked"), PolicyError("blocked again"), None])
    with pytest.raises(GenerationError) as info:
        asyncio.run(gen.generate(_item()))
    assert info.value.attempts == 2
    assert isinstance(info.value.last_error, PolicyError)
    assert len(client.images.outcomes) == 1


def test_transient_errors_back_off_exponentially():
    gen, _, _, delays = _generator([RuntimeError("502"), RuntimeError("timeout"), None])
    result = asyncio.run(gen.generate(_item()))
    assert result.attempts == 3
    assert delays == [2.0, 4.0]


def test_attempts_exhausted():
    gen, client, _, delays = _generator([RuntimeError("a"), RuntimeError("b"), RuntimeError("c")])
    with pytest.raises(GenerationError, match="after 3 attempt"):
        asyncio.run(gen.generate(_item()))
    assert delays == [2.0, 4.0]
    assert len(client.images.prompts) == 3


def test_policy_error_after_transient_fails():
    """The sanitized fallback only applies to a first-attempt rejection."""
    gen, _, _, _ = _generator([RuntimeError("502"), PolicyError("blocked"), None])
    with pytest.raises(GenerationError):
        asyncio.run(gen.generate(_item()))


def test_download_failure_is_retried():
    gen, _, fetcher, delays = _generator([None, None])
    fetcher.responses[IMAGE_URL] = RuntimeError("reset")

    async def sleep(delay):
        delays.append(delay)
        fetcher.responses[IMAGE_URL] = image_bytes(64, 64, "PNG")

    gen._sleep = sleep
    result = asyncio.run(gen.generate(_item()))
    assert result.attempts == 2
    assert delays == [2.0]


def test_explicit_prompt_used():
    gen, client, _, _ = _generator([None])
    asyncio.run(gen.generate(_item(), prompt="A cream sherwani"))
    assert client.images.prompts == ["A cream sherwani"]


def test_from_config_without_key():
    assert ImageGenerator.from_config(PipelineConfig(), FakeFetcher(), PromptBuilder()) is None


@pytest.mark.parametrize("exc, expected", [
    (PolicyError("x"), True),
    (SimpleNamespace(body={"code": "content_policy_violation"}), True),
    (RuntimeError("Error code: 400 - content_policy_violation"), True),
    (RuntimeError("rate limited"), False),
])
def test_is_content_policy_error(exc, expected):
    assert is_content_policy_error(exc) is expected


def test_aclose_closes_client():
    gen, client, _, _ = _generator([])
    closed = []

    async def close():
        closed.append(True)

    client.close = close
    asyncio.run(gen.aclose())
    assert closed == [True]


def test_aclose_without_client_close():
    gen, _, _, _ = _generator([])
    asyncio.run(gen.aclose())
