#!/usr/bin/env python3
"""Process hand-taken closet photos.

Each raw photo goes through background removal, is padded onto the uniform
gray 800x800 canvas and saved as {output}/{item_id}.webp.  The mapping file
ties raw filenames to catalog items by id or exact name:

    {
      "brown-blazer.jpg": "Brown Leather Blazer",
      "braves-cap.jpg": "item-1771864195524-0"
    }

Usage:
    python tools/process_photos.py public/items/raw photo-map.json
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path so we can import lookbook modules
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lookbook.background import BackgroundRemover   # noqa: E402
from lookbook.catalog import CatalogError           # noqa: E402
from lookbook.config import PipelineConfig          # noqa: E402
from lookbook.photos import load_photo_mapping, process_local_photos  # noqa: E402


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Background-remove and publish raw closet photos")
    parser.add_argument("raw_dir", type=Path, help="Directory with raw .jpg/.png photos")
    parser.add_argument("mapping", type=Path, help="JSON file mapping filename -> item id or name")
    parser.add_argument("--catalog", help="Path to closet-items.json")
    parser.add_argument("--output", help="Image output directory")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if not args.raw_dir.is_dir():
        print(f"Error: {args.raw_dir} is not a directory", file=sys.stderr)
        sys.exit(1)

    config = PipelineConfig.from_env(catalog_path=args.catalog, output_dir=args.output)
    try:
        mapping = load_photo_mapping(args.mapping)
        process_local_photos(config, args.raw_dir, mapping, BackgroundRemover(config))
    except (CatalogError, OSError, ValueError) as exc:
        print(f"Fatal error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
