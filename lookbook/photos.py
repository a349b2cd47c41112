"""Maintenance jobs for closet photos outside the main batch.

process_local_photos
    Hand-taken raw photos: background removal -> contain on gray -> WebP,
    then point the matching catalog items at the new files.

refinish_images
    Re-run background removal on already published images so they all sit
    on the exact same gray.

restore_images
    Undo damage from overzealous background removal: download the item's
    direct image again and normalize it without background removal.

These jobs run one item at a time and report per-item results the same way
the batch does.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

from lookbook.background import BackgroundRemover
from lookbook.catalog import Catalog, CatalogItem
from lookbook.config import PipelineConfig
from lookbook.fetcher import FetchError, HttpFetcher
from lookbook.image_processor import FitPolicy, ImageDecodeError, normalize_image, replace_image, write_image
from lookbook.pipeline import ProcessingResult, apply_results

logger = logging.getLogger(__name__)

RAW_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".heic")


def _normalize(config: PipelineConfig, data: bytes, fit: FitPolicy) -> bytes:
    return normalize_image(
        data,
        fit,
        canvas_size=config.canvas_size,
        background=config.background,
        webp_quality=config.webp_quality,
        webp_method=config.webp_method,
    )


def load_photo_mapping(path: str | os.PathLike) -> dict[str, str]:
    """Read ``{"raw-file.jpg": "item id or item name"}``."""
    with open(path, "r", encoding="utf-8") as f:
        mapping = json.load(f)
    if not isinstance(mapping, dict):
        raise ValueError(f"Photo mapping {path} must be a JSON object")
    return {str(k): str(v) for k, v in mapping.items()}


def match_item(catalog: Catalog, key: str) -> CatalogItem | None:
    """Look *key* up as an item id first, then as an exact item name."""
    return catalog.get(key) or catalog.find_by_name(key)


def process_local_photos(
    config: PipelineConfig,
    raw_dir: str | os.PathLike,
    mapping: dict[str, str],
    remover: BackgroundRemover,
) -> list[ProcessingResult]:
    """Process raw photos in *raw_dir* and update the catalog once."""
    catalog = Catalog.load(config.catalog_path)
    raw_dir = Path(raw_dir)
    raw_files = sorted(p for p in raw_dir.iterdir()
                       if p.suffix.lower() in RAW_EXTENSIONS)
    print(f"\nProcessing {len(raw_files)} photos\n")

    results: list[ProcessingResult] = []
    for i, raw_path in enumerate(raw_files, start=1):
        progress = f"[{i}/{len(raw_files)}]"
        key = mapping.get(raw_path.name)
        if key is None:
            print(f"{progress} {raw_path.name} -- no mapping, skipping")
            continue
        item = match_item(catalog, key)
        if item is None:
            print(f"{progress} {raw_path.name} -> \"{key}\" -- NOT FOUND in catalog")
            continue

        print(f"{progress} {raw_path.name} -> {item.name} ({item.id})")
        try:
            data = remover.remove(raw_path.read_bytes())
            size = write_image(_normalize(config, data, FitPolicy.CONTAIN),
                               config.output_file(item.id))
        except (OSError, ImageDecodeError) as exc:
            print(f"  FAILED: {exc}")
            results.append(ProcessingResult(item.id, item.name, False, error=str(exc)))
            continue

        print(f"  Saved {config.output_file(item.id)} ({size / 1024:.0f} KB)")
        results.append(ProcessingResult(item.id, item.name, True,
                                        path=config.public_path(item.id),
                                        size_bytes=size))

    apply_results(catalog, results)
    catalog.write(config.catalog_path)
    ok = sum(1 for r in results if r.ok)
    print(f"\nDone! {ok}/{len(raw_files)} processed. {config.catalog_path.name} updated.")
    return results


def _existing_outputs(config: PipelineConfig, item_ids: list[str] | None) -> list[Path]:
    if item_ids:
        return [config.output_file(item_id) for item_id in item_ids]
    return sorted(p for p in config.output_dir.glob("*.webp")
                  if not p.stem.endswith("-temp"))


def refinish_images(
    config: PipelineConfig,
    remover: BackgroundRemover,
    item_ids: list[str] | None = None,
) -> list[ProcessingResult]:
    """Re-cut and re-pad published images in place (all, or *item_ids*)."""
    paths = _existing_outputs(config, item_ids)
    print(f"\nFound {len(paths)} images to process\n")

    results: list[ProcessingResult] = []
    for i, path in enumerate(paths, start=1):
        item_id = path.stem
        try:
            data = remover.remove(path.read_bytes())
            size = replace_image(_normalize(config, data, FitPolicy.CONTAIN), path)
        except (OSError, ImageDecodeError) as exc:
            print(f"[{i}/{len(paths)}] {path.name} FAILED: {exc}")
            results.append(ProcessingResult(item_id, item_id, False, error=str(exc)))
            continue
        print(f"[{i}/{len(paths)}] {path.name} OK ({size / 1024:.0f} KB)")
        results.append(ProcessingResult(item_id, item_id, True,
                                        path=config.public_path(item_id),
                                        size_bytes=size))

    ok = sum(1 for r in results if r.ok)
    print(f"\nDone! {ok} succeeded, {len(results) - ok} failed")
    return results


async def restore_images(
    config: PipelineConfig,
    item_ids: list[str],
    fetcher: HttpFetcher,
) -> list[ProcessingResult]:
    """Re-download each item's ``imageUrl`` and normalize without cut-out."""
    catalog = Catalog.load(config.catalog_path)
    print(f"\nRestoring {len(item_ids)} items (no background removal)\n")

    results: list[ProcessingResult] = []
    for item_id in item_ids:
        item = catalog.get(item_id)
        if item is None or not item.image_url:
            reason = "not in catalog" if item is None else "no imageUrl"
            print(f"[{item_id}] skipped: {reason}")
            results.append(ProcessingResult(item_id, item_id, False, error=reason))
            continue

        print(f"[{item.name}] ({item.id})")
        try:
            data = await fetcher.fetch(item.image_url, timeout=config.download_timeout)
            encoded = await asyncio.to_thread(_normalize, config, data, FitPolicy.CONTAIN)
            size = await asyncio.to_thread(replace_image, encoded, config.output_file(item.id))
        except (FetchError, OSError, ImageDecodeError) as exc:
            print(f"  FAILED: {exc}")
            results.append(ProcessingResult(item.id, item.name, False, error=str(exc)))
            continue
        print(f"  Saved {config.output_file(item.id)} ({size / 1024:.0f} KB)")
        results.append(ProcessingResult(item.id, item.name, True,
                                        path=config.public_path(item.id),
                                        size_bytes=size))
    return results
