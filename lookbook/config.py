"""Pipeline configuration.

A single frozen ``PipelineConfig`` is built once at process start and handed
to every component.  Values come from the defaults below, then from the
environment (``.env.local`` / ``.env`` are loaded with python-dotenv, never
overriding variables that are already set), then from explicit overrides
such as CLI flags.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Uniform light gray (#F0F0F0) used for padding and flattening
BACKGROUND_RGB = (240, 240, 240)


@dataclass(frozen=True)
class PipelineConfig:
    catalog_path: Path = PROJECT_ROOT / "data" / "closet-items.json"
    output_dir: Path = PROJECT_ROOT / "public" / "items"
    public_prefix: str = "/items"
    prompts_path: Path | None = None

    # Normalization
    canvas_size: int = 800
    background: tuple[int, int, int] = BACKGROUND_RGB
    webp_quality: int = 80
    webp_method: int = 4
    remove_background: bool = False
    # Cut-outs keeping less than this opaque fraction are treated as damaged
    min_foreground_fraction: float = 0.05

    # Batch
    workers: int = 3

    # HTTP
    direct_timeout: float = 15.0
    page_timeout: float = 10.0
    download_timeout: float = 60.0
    min_direct_width: int = 50
    min_scraped_width: int = 100

    # Generation
    openai_api_key: str | None = None
    image_model: str = "dall-e-3"
    image_size: str = "1024x1024"
    image_quality: str = "standard"
    max_attempts: int = 3
    retry_base_delay: float = 2.0
    generation_cost_usd: float = 0.04

    # Tagging
    tagger_model: str = "gpt-4o"
    tagger_max_dimension: int = 1568

    @classmethod
    def from_env(cls, root: Path | None = None, **overrides) -> PipelineConfig:
        """Build a config from ``.env`` files, environment and *overrides*.

        Overrides whose value is ``None`` are ignored so argparse defaults
        can be passed straight through.
        """
        root = root or PROJECT_ROOT
        load_dotenv(root / ".env.local", override=False)
        load_dotenv(root / ".env", override=False)

        values: dict = {}
        if os.getenv("OPENAI_API_KEY"):
            values["openai_api_key"] = os.environ["OPENAI_API_KEY"]
        if os.getenv("LOOKBOOK_CATALOG"):
            values["catalog_path"] = Path(os.environ["LOOKBOOK_CATALOG"])
        if os.getenv("LOOKBOOK_OUTPUT_DIR"):
            values["output_dir"] = Path(os.environ["LOOKBOOK_OUTPUT_DIR"])

        values.update({k: v for k, v in overrides.items() if v is not None})
        for key in ("catalog_path", "output_dir", "prompts_path"):
            if isinstance(values.get(key), str):
                values[key] = Path(values[key])
        return cls(**values)

    def with_overrides(self, **overrides) -> PipelineConfig:
        return dataclasses.replace(
            self, **{k: v for k, v in overrides.items() if v is not None}
        )

    def output_file(self, item_id: str) -> Path:
        """Filesystem path of an item's normalized image."""
        return self.output_dir / f"{item_id}.webp"

    def public_path(self, item_id: str) -> str:
        """Catalog reference for an item's normalized image."""
        return f"{self.public_prefix}/{item_id}.webp"
