"""
AI image generation (DALL-E via the openai client)

Generation runs as a small state machine:

    ATTEMPTING --content policy, 1st attempt--> RETRYING_SANITIZED
    ATTEMPTING / RETRYING_SANITIZED --ok--> SUCCEEDED
    ATTEMPTING / RETRYING_SANITIZED --other error, attempts left--> (backoff, same state)
    anything else --> FAILED

The content-policy fallback rebuilds the prompt without brand or bracketed
qualifiers and tries again immediately.  Other errors are retried with
exponential backoff (base delay doubling each attempt) up to
``max_attempts`` attempts in total.  The API returns a URL which is then
downloaded through the shared HttpFetcher.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from lookbook.catalog import CatalogItem
from lookbook.config import PipelineConfig
from lookbook.fetcher import HttpFetcher
from lookbook.prompts import PromptBuilder

logger = logging.getLogger(__name__)


class GenerationState(Enum):
    ATTEMPTING = "attempting"
    RETRYING_SANITIZED = "retrying-sanitized"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class GenerationError(Exception):
    """Image generation failed for good; carries the last underlying error."""

    def __init__(self, message: str, last_error: BaseException | None = None,
                 attempts: int = 0):
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


@dataclass
class GeneratedImage:
    data: bytes
    prompt: str
    url: str
    attempts: int
    revised_prompt: str | None = None
    sanitized: bool = False


def is_content_policy_error(exc: BaseException) -> bool:
    """True for the API's content-policy rejection."""
    if getattr(exc, "code", None) == "content_policy_violation":
        return True
    body = getattr(exc, "body", None)
    if isinstance(body, dict) and body.get("code") == "content_policy_violation":
        return True
    return "content_policy" in str(exc)


class ImageGenerator:
    """Generates one product image per call.

    Args:
        config:  Pipeline configuration (model, size, retries, timeouts).
        client:  An ``openai.AsyncOpenAI`` instance (or compatible object).
        fetcher: Shared HttpFetcher used to download the generated image.
        prompts: Prompt builder for full and sanitized prompts.
        sleep:   Awaitable used for backoff delays.
    """

    def __init__(self, config: PipelineConfig, client, fetcher: HttpFetcher,
                 prompts: PromptBuilder, sleep=asyncio.sleep):
        self.config = config
        self.client = client
        self.fetcher = fetcher
        self.prompts = prompts
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: PipelineConfig, fetcher: HttpFetcher,
                    prompts: PromptBuilder) -> ImageGenerator | None:
        """Build a generator backed by AsyncOpenAI, or None without an API key."""
        if not config.openai_api_key:
            return None
        from openai import AsyncOpenAI

        return cls(config, AsyncOpenAI(api_key=config.openai_api_key), fetcher, prompts)

    async def aclose(self) -> None:
        """Close the underlying API client, if it has a close coroutine."""
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    async def _attempt(self, prompt: str) -> tuple[bytes, str, str | None]:
        response = await self.client.images.generate(
            model=self.config.image_model,
            prompt=prompt,
            n=1,
            size=self.config.image_size,
            quality=self.config.image_quality,
            response_format="url",
        )
        image = response.data[0]
        revised = getattr(image, "revised_prompt", None)
        if revised:
            logger.debug("Revised prompt: %s", revised[:90])
        data = await self.fetcher.fetch(image.url, timeout=self.config.download_timeout)
        return data, image.url, revised

    async def generate(self, item: CatalogItem, prompt: str | None = None) -> GeneratedImage:
        """Generate and download an image for *item*.

        Raises:
            GenerationError: After a second content-policy rejection or once
                all attempts are used up.
        """
        max_attempts = max(1, self.config.max_attempts)
        prompt = prompt or self.prompts.build(item)
        state = GenerationState.ATTEMPTING
        attempt = 0
        last_error: BaseException | None = None

        while state in (GenerationState.ATTEMPTING, GenerationState.RETRYING_SANITIZED):
            attempt += 1
            try:
                data, url, revised = await self._attempt(prompt)
            except Exception as exc:
                last_error = exc
                if is_content_policy_error(exc):
                    if state is GenerationState.ATTEMPTING and attempt == 1:
                        logger.warning("%s: content policy rejection, retrying without brand",
                                       item.name)
                        prompt = self.prompts.build_sanitized(item)
                        state = GenerationState.RETRYING_SANITIZED
                        continue
                    state = GenerationState.FAILED
                elif attempt < max_attempts:
                    delay = self.config.retry_base_delay * (2 ** (attempt - 1))
                    logger.warning("%s: attempt %d/%d failed (%s), retrying in %.1fs",
                                   item.name, attempt, max_attempts, exc, delay)
                    await self._sleep(delay)
                else:
                    state = GenerationState.FAILED
            else:
                logger.info("%s: generated in %d attempt(s)", item.name, attempt)
                return GeneratedImage(
                    data=data,
                    prompt=prompt,
                    url=url,
                    attempts=attempt,
                    revised_prompt=revised,
                    sanitized=state is GenerationState.RETRYING_SANITIZED,
                )

        raise GenerationError(
            f"generation failed after {attempt} attempt(s): {last_error}",
            last_error=last_error,
            attempts=attempt,
        )
