"""
Closet Item Image Pipeline CLI

Fetches real product images for closet items (direct image URL, then the
purchase page's og:image) or generates one with DALL-E as a last resort,
normalizes them to 800x800 .webp on a uniform gray background, and updates
closet-items.json.

Usage:
    python cli.py [OPTIONS]

Options:
    --dry-run            Preview sources and prompts, write nothing
    --force              Reprocess ALL items
    --id ID              Process a single item
    --category CAT       Process one category only
    --catalog PATH       closet-items.json (default: ./data/closet-items.json)
    --output PATH        Image output directory (default: ./public/items)
    --workers INT        Concurrent workers (default: 3)
    --remove-bg          Cut out backgrounds and pad onto gray (contain fit)
    --prompts PATH       JSON file with prompt templates/overrides
    --log-level LEVEL    Logging level (default: WARNING)
"""

import argparse
import asyncio
import logging
import os
import sys

# Ensure the project root is on sys.path so `lookbook.*` imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from lookbook.catalog import CatalogError
from lookbook.config import PipelineConfig
from lookbook.pipeline import PipelineError, run_pipeline


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch or generate closet item images and update the catalog.",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Preview intended sources and prompts, don't fetch or write anything",
    )
    parser.add_argument(
        "--force", action="store_true",
        help="Reprocess every item, even those that already have an image",
    )
    parser.add_argument(
        "--id", dest="only_id",
        help="Process a single item by id",
    )
    parser.add_argument(
        "--category", dest="only_category",
        help="Process a single category (e.g. shoes)",
    )
    parser.add_argument(
        "--catalog",
        help="Path to closet-items.json (default: ./data/closet-items.json)",
    )
    parser.add_argument(
        "--output",
        help="Image output directory (default: ./public/items)",
    )
    parser.add_argument(
        "--workers", type=int,
        help="Number of concurrent workers (default: 3)",
    )
    parser.add_argument(
        "--remove-bg", action="store_true", default=None,
        help="Remove backgrounds and pad onto gray instead of cropping to fill",
    )
    parser.add_argument(
        "--prompts",
        help="JSON file with prompt templates, per-item overrides and suffix",
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: WARNING)",
    )
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s [%(name)s] %(message)s",
    )

    config = PipelineConfig.from_env(
        catalog_path=args.catalog,
        output_dir=args.output,
        workers=args.workers,
        remove_background=args.remove_bg,
        prompts_path=args.prompts,
    )

    print("\n  Closet Item Image Generator\n")
    try:
        asyncio.run(run_pipeline(
            config,
            dry_run=args.dry_run,
            force=args.force,
            only_id=args.only_id,
            only_category=args.only_category,
        ))
    except (CatalogError, PipelineError, OSError) as exc:
        print(f"\n  Fatal error: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
