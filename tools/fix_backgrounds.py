#!/usr/bin/env python3
"""Re-finish published closet images onto the uniform gray background.

Default mode runs background removal again on existing {output}/*.webp files
(or only --ids) and re-pads them onto #F0F0F0, replacing each file
atomically.

--restore mode is for items damaged by overzealous background removal: it
re-downloads each item's imageUrl and pads it onto gray without any
background removal.

Usage:
    python tools/fix_backgrounds.py
    python tools/fix_backgrounds.py --ids item-1 item-2
    python tools/fix_backgrounds.py --restore --ids item-1771863790940-1
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path so we can import lookbook modules
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lookbook.background import BackgroundRemover   # noqa: E402
from lookbook.catalog import CatalogError           # noqa: E402
from lookbook.config import PipelineConfig          # noqa: E402
from lookbook.fetcher import HttpFetcher            # noqa: E402
from lookbook.photos import refinish_images, restore_images  # noqa: E402


async def _restore(config: PipelineConfig, ids: list[str]):
    async with HttpFetcher() as fetcher:
        return await restore_images(config, ids, fetcher)


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Re-finish closet image backgrounds")
    parser.add_argument("--ids", nargs="+", help="Only these item ids (default: all images)")
    parser.add_argument("--restore", action="store_true",
                        help="Re-download imageUrl and skip background removal (requires --ids)")
    parser.add_argument("--catalog", help="Path to closet-items.json")
    parser.add_argument("--output", help="Image output directory")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    config = PipelineConfig.from_env(catalog_path=args.catalog, output_dir=args.output)

    if args.restore:
        if not args.ids:
            print("Error: --restore needs --ids", file=sys.stderr)
            sys.exit(1)
        try:
            results = asyncio.run(_restore(config, args.ids))
        except CatalogError as exc:
            print(f"Fatal error: {exc}", file=sys.stderr)
            sys.exit(1)
        ok = sum(1 for r in results if r.ok)
        print(f"\nAll done! {ok}/{len(results)} restored")
        return

    if not config.output_dir.is_dir():
        print(f"Error: {config.output_dir} is not a directory", file=sys.stderr)
        sys.exit(1)
    refinish_images(config, BackgroundRemover(config), args.ids)


if __name__ == "__main__":
    main()
