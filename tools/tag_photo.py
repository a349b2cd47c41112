#!/usr/bin/env python3
"""Tag an outfit photo with an OpenAI vision model.

Prints the detected title, season, occasions, palette and pieces as JSON.
With --add-items every detected piece is appended to closet-items.json as a
new item (no image yet; run cli.py afterwards to fetch or generate one).

Usage:
    python tools/tag_photo.py outfit.jpg
    python tools/tag_photo.py outfit.jpg --add-items
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path so we can import lookbook modules
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lookbook.catalog import Catalog, CatalogError   # noqa: E402
from lookbook.config import PipelineConfig           # noqa: E402
from lookbook.image_processor import ImageDecodeError  # noqa: E402
from lookbook.tagger import OutfitTagger, TaggingError, new_catalog_items  # noqa: E402


async def _analyze(config: PipelineConfig, photo: bytes):
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=config.openai_api_key)
    try:
        return await OutfitTagger(config, client).analyze(photo)
    finally:
        await client.close()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="AI-tag an outfit photo")
    parser.add_argument("photo", type=Path, help="Outfit photo (.jpg/.png)")
    parser.add_argument("--add-items", action="store_true",
                        help="Append detected pieces to the catalog")
    parser.add_argument("--catalog", help="Path to closet-items.json")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    config = PipelineConfig.from_env(catalog_path=args.catalog)
    if not config.openai_api_key:
        print("Error: OPENAI_API_KEY not found. Create .env.local with:\n"
              "  OPENAI_API_KEY=sk-...", file=sys.stderr)
        sys.exit(1)

    try:
        result = asyncio.run(_analyze(config, args.photo.read_bytes()))
    except (OSError, ImageDecodeError, TaggingError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))

    if args.add_items:
        try:
            catalog = Catalog.load(config.catalog_path)
            new_items = new_catalog_items(result)
            for item in new_items:
                catalog.add_item(item)
        except CatalogError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        catalog.write(config.catalog_path)
        print(f"\nAdded {len(new_items)} item(s) to {config.catalog_path}")


if __name__ == "__main__":
    main()
