"""
Batch Coordinator

Selects catalog items that need an image, runs them through
resolve -> (background removal) -> normalize -> write with a small bounded
worker pool, then writes the updated catalog back once:

  - {output_dir}/{item_id}.webp for every success
  - catalog "images" replaced by ["{public_prefix}/{item_id}.webp"]
  - failed items left untouched apart from an empty "images" list
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from collections import Counter
from dataclasses import dataclass, field

from lookbook.background import BackgroundRemover
from lookbook.catalog import Catalog, CatalogItem
from lookbook.config import PipelineConfig
from lookbook.fetcher import HttpFetcher
from lookbook.generator import ImageGenerator
from lookbook.image_processor import FitPolicy, normalize_image, write_image
from lookbook.prompts import PromptBuilder
from lookbook.resolver import Source, SourceResolver
from lookbook.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Fatal setup problem; the run aborts before writing anything."""


@dataclass
class ProcessingResult:
    item_id: str
    name: str
    ok: bool
    path: str | None = None
    source: Source | None = None
    size_bytes: int = 0
    error: str | None = None


@dataclass
class BatchReport:
    total_items: int = 0
    selected: list[CatalogItem] = field(default_factory=list)
    results: list[ProcessingResult] = field(default_factory=list)
    dry_run: bool = False
    catalog_written: bool = False
    elapsed: float = 0.0
    peak_in_flight: int = 0
    generation_cost_usd: float = 0.04

    @property
    def succeeded(self) -> list[ProcessingResult]:
        return [r for r in self.results if r.ok]

    @property
    def failures(self) -> list[ProcessingResult]:
        return [r for r in self.results if not r.ok]

    def counts_by_source(self) -> dict[Source, int]:
        return dict(Counter(r.source for r in self.succeeded))

    @property
    def estimated_cost(self) -> float:
        return self.counts_by_source().get(Source.GENERATED, 0) * self.generation_cost_usd


def select_items(
    catalog: Catalog,
    config: PipelineConfig,
    force: bool = False,
    only_id: str | None = None,
    only_category: str | None = None,
) -> list[CatalogItem]:
    """Pick the items for this run; the first matching rule wins.

    An explicit id or category selects unconditionally; ``force`` selects
    everything; otherwise an item is selected when its output file is
    missing or its ``images`` list is empty.
    """
    if only_id:
        return [item for item in catalog if item.id == only_id]
    if only_category:
        return catalog.by_category(only_category)
    if force:
        return list(catalog)
    return [
        item for item in catalog
        if not os.path.exists(config.output_file(item.id)) or not item.images
    ]


def apply_results(catalog: Catalog, results: list[ProcessingResult]) -> int:
    """Point each successful item at its new image. Returns the update count."""
    updated = 0
    for result in results:
        if not result.ok:
            continue
        item = catalog.get(result.item_id)
        if item is not None:
            item.images = [result.path]
            updated += 1
    return updated


def _short(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class BatchRunner:
    """Processes items concurrently and collects ProcessingResults."""

    def __init__(self, config: PipelineConfig, resolver: SourceResolver,
                 remover: BackgroundRemover | None = None):
        self.config = config
        self.resolver = resolver
        self.remover = remover
        self.pool = WorkerPool(config.workers)
        self._completed = 0

    async def process_item(self, item: CatalogItem, total: int) -> ProcessingResult:
        print(f"  [{self._completed + 1}/{total}] {item.name}")
        acquired = await self.resolver.acquire(item)

        # CPU and disk work runs in a thread so sibling HTTP timeouts keep ticking
        data, fit = acquired.data, FitPolicy.COVER
        if self.remover is not None:
            data = await asyncio.to_thread(self.remover.remove, data)
            fit = FitPolicy.CONTAIN

        encoded = await asyncio.to_thread(
            normalize_image,
            data,
            fit,
            canvas_size=self.config.canvas_size,
            background=self.config.background,
            webp_quality=self.config.webp_quality,
            webp_method=self.config.webp_method,
        )
        size = await asyncio.to_thread(write_image, encoded,
                                       self.config.output_file(item.id))

        self._completed += 1
        path = self.config.public_path(item.id)
        print(f"  [{self._completed}/{total}] Saved ({acquired.source.value}): "
              f"{path} ({size / 1024:.1f} KB)")
        return ProcessingResult(item.id, item.name, True, path=path,
                                source=acquired.source, size_bytes=size)

    async def run(self, items: list[CatalogItem]) -> list[ProcessingResult]:
        total = len(items)
        outcomes = await self.pool.map(items, lambda item, _i: self.process_item(item, total))

        results = []
        for outcome in outcomes:
            if outcome.ok:
                results.append(outcome.result)
                continue
            item = outcome.item
            reason = str(outcome.error) or type(outcome.error).__name__
            print(f"  Failed: {item.name} -- {reason}")
            results.append(ProcessingResult(item.id, item.name, False, error=reason))
        return results


def print_plan(resolver: SourceResolver, items: list[CatalogItem], total: int,
               config: PipelineConfig) -> Counter:
    plans = Counter(resolver.plan(item).source for item in items)
    generated = plans.get(Source.GENERATED, 0)
    print(f"  {len(items)} items to process ({total - len(items)} already done)")
    if plans.get(Source.DIRECT_URL):
        print(f"    {plans[Source.DIRECT_URL]} with direct image URL")
    if plans.get(Source.PAGE_SCRAPE):
        print(f"    {plans[Source.PAGE_SCRAPE]} with purchase page URL (will try og:image)")
    if generated:
        print(f"    {generated} without URL (will generate, "
              f"~${generated * config.generation_cost_usd:.2f})")
    print()
    return plans


def print_dry_run(resolver: SourceResolver, items: list[CatalogItem],
                  plans: Counter, config: PipelineConfig) -> None:
    print("  DRY RUN: previewing sources\n")
    for i, item in enumerate(items, start=1):
        plan = resolver.plan(item)
        print(f"  {i}. {item.name} ({item.category})")
        print(f"     Source: {plan.source.value} {_short(plan.detail, 60)}")
        if plan.prompt:
            print(f"     Prompt: {_short(plan.prompt, 100)}")
        print()
    generated = plans.get(Source.GENERATED, 0)
    print(f"  Estimated cost: ~${generated * config.generation_cost_usd:.2f} "
          f"({len(items) - generated} from URL, {generated} generated)\n")


def print_summary(report: BatchReport) -> None:
    counts = report.counts_by_source()
    print("\n=== SUMMARY ===")
    print(f"  Processed:  {len(report.succeeded)} images")
    for source in Source:
        if counts.get(source):
            print(f"    {source.value}: {counts[source]}")
    if report.failures:
        print(f"  Failed:     {len(report.failures)} items")
        for failure in report.failures:
            print(f"    - {failure.name}: {failure.error}")
    print(f"  Time:       {report.elapsed:.1f}s")
    print(f"  Est. cost:  ~${report.estimated_cost:.2f}")


async def run_pipeline(
    config: PipelineConfig,
    dry_run: bool = False,
    force: bool = False,
    only_id: str | None = None,
    only_category: str | None = None,
    fetcher: HttpFetcher | None = None,
    generator_factory=None,
    remover: BackgroundRemover | None = None,
) -> BatchReport:
    """Run one batch over the catalog at ``config.catalog_path``.

    Args:
        config:            Pipeline configuration.
        dry_run:           Print intended sources/prompts, write nothing.
        force:             Reprocess every item.
        only_id:           Restrict to a single item id.
        only_category:     Restrict to a single category.
        fetcher:           HttpFetcher to use (default: a new aiohttp session).
        generator_factory: ``(fetcher, prompts) -> generator or None``
                           (default: ImageGenerator.from_config).
        remover:           Background remover (default: a rembg session when
                           ``config.remove_background`` is set).

    Raises:
        CatalogError:  Malformed or missing catalog file.
        PipelineError: Unusable prompt config, output directory or catalog write.
    """
    t_start = time.perf_counter()
    catalog = Catalog.load(config.catalog_path)
    print(f"  Loaded {len(catalog)} items from {config.catalog_path.name}")

    try:
        prompts = PromptBuilder.from_file(config.prompts_path)
    except (OSError, ValueError) as exc:
        raise PipelineError(f"Cannot load prompt config {config.prompts_path}: {exc}") from exc

    report = BatchReport(total_items=len(catalog), dry_run=dry_run,
                         generation_cost_usd=config.generation_cost_usd)
    items = select_items(catalog, config, force=force, only_id=only_id,
                         only_category=only_category)
    report.selected = items

    if not dry_run:
        try:
            os.makedirs(config.output_dir, exist_ok=True)
        except OSError as exc:
            raise PipelineError(f"Cannot create output directory {config.output_dir}: {exc}") from exc

    fetcher_ctx = HttpFetcher() if fetcher is None else contextlib.nullcontext(fetcher)
    async with fetcher_ctx as fetcher:
        factory = generator_factory or (
            lambda f, p: ImageGenerator.from_config(config, f, p))
        generator = None if dry_run else factory(fetcher, prompts)
        resolver = SourceResolver(config, fetcher, prompts, generator)
        try:
            plans = print_plan(resolver, items, len(catalog), config)
            if not items:
                if only_id or only_category:
                    selector = f"id {only_id!r}" if only_id else f"category {only_category!r}"
                    print(f"  No items match {selector}.")
                else:
                    print("  All items already have images. Use --force to reprocess.")
                return report

            if dry_run:
                print_dry_run(resolver, items, plans, config)
                return report

            if remover is None and config.remove_background:
                remover = BackgroundRemover(config)

            runner = BatchRunner(config, resolver, remover)
            report.results = await runner.run(items)
            report.peak_in_flight = runner.pool.peak_in_flight
        finally:
            if generator is not None:
                await generator.aclose()

    updated = apply_results(catalog, report.results)
    try:
        catalog.write(config.catalog_path)
    except OSError as exc:
        raise PipelineError(f"Cannot write catalog {config.catalog_path}: {exc}") from exc
    report.catalog_written = True
    logger.info("Catalog written with %d updated item(s)", updated)

    report.elapsed = time.perf_counter() - t_start
    print_summary(report)
    return report
