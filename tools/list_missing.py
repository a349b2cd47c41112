#!/usr/bin/env python3
"""List closet items that have no image yet.

Usage:
    python tools/list_missing.py
    python tools/list_missing.py --catalog data/closet-items.json --by-category
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path so we can import lookbook modules
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lookbook.catalog import Catalog, CatalogError, CatalogItem  # noqa: E402
from lookbook.config import PipelineConfig                         # noqa: E402


def format_item(item: CatalogItem) -> str:
    brand = f" ({item.brand})" if item.brand else ""
    return f"- {item.name}{brand} [{item.category}] - {item.color or 'no color'}"


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="List closet items without images")
    parser.add_argument("--catalog", help="Path to closet-items.json")
    parser.add_argument("--by-category", action="store_true",
                        help="Group the list by closet category")
    args = parser.parse_args(argv)

    config = PipelineConfig.from_env(catalog_path=args.catalog)
    try:
        catalog = Catalog.load(config.catalog_path)
    except CatalogError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    missing = catalog.missing_images()
    print(f"{len(missing)} items without images:\n")

    if not args.by_category:
        for item in missing:
            print(format_item(item))
        return

    missing_catalog = Catalog(missing)
    for category, items in missing_catalog.grouped_by_category().items():
        print(f"{category} ({len(items)})")
        for item in items:
            print(f"  {format_item(item)}")


if __name__ == "__main__":
    main()
