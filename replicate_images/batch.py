"""Cache-aware generation: the single-prompt path and the concurrent batch executor.

A batch is split into items already satisfied by the cache and items that
need a prediction. Pending items run on a thread pool of
``RunConfig.concurrency`` workers; every cache upsert, result append and
report line happens under one executor lock. The cache is saved once when
all workers are done.
"""
from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Set

from . import convert
from .cache import CacheStore, fingerprint, output_file_name
from .config import RunConfig
from .errors import PersistFailed, ReplicateImagesError
from .prompts import PromptEntry
from .report import Reporter
from .schema import BatchCounts, DryRunPrompt, DryRunResult, ItemResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkItem:
    prompt: str
    model: str
    hash: str
    output_file: str  # relative, "{hash}.webp"

    @classmethod
    def create(cls, prompt: str, model: str) -> "WorkItem":
        h = fingerprint(prompt, model)
        return cls(prompt=prompt, model=model, hash=h, output_file=output_file_name(h))


def work_items(entries: Iterable[PromptEntry], default_model: str) -> List[WorkItem]:
    return [WorkItem.create(e.prompt or "", e.resolved_model(default_model)) for e in entries]


class BatchOutcome(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    TOTAL_FAILURE = "total_failure"


def classify(pending: int, errored: int) -> BatchOutcome:
    if errored == 0:
        return BatchOutcome.SUCCESS
    if errored >= pending:
        return BatchOutcome.TOTAL_FAILURE
    return BatchOutcome.PARTIAL_FAILURE


@dataclass
class BatchPlan:
    cached: List[ItemResult] = field(default_factory=list)
    pending: List[WorkItem] = field(default_factory=list)
    # Repeats of an earlier item's fingerprint, in input order
    duplicates: List[WorkItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.cached) + len(self.pending) + len(self.duplicates)


@dataclass
class BatchReport:
    results: List[ItemResult]
    counts: BatchCounts
    outcome: BatchOutcome


class BatchExecutor:
    """Runs work items against a shared :class:`CacheStore`.

    ``invoker`` is anything with ``generate_image(model_id, prompt)``
    returning an object with ``data`` bytes and a ``url``; in production
    that is :class:`replicate_images.client.ReplicateClient`.
    """

    def __init__(self, store: CacheStore, invoker, config: RunConfig, reporter: Optional[Reporter] = None):
        self.store = store
        self.invoker = invoker
        self.config = config
        self.reporter = reporter or Reporter(config.output)
        self._lock = threading.Lock()
        self._results: List[ItemResult] = []

    def output_path(self, item: WorkItem) -> Path:
        return self.config.output_dir / item.output_file

    def _cached_path(self, item: WorkItem) -> Optional[Path]:
        if self.config.no_cache:
            return None
        return self.store.hit(item.hash)

    def plan(self, items: Iterable[WorkItem]) -> BatchPlan:
        """Partition ``items`` into cache hits and pending work.

        Runs sequentially before any worker starts. Repeated fingerprints
        collapse to their first occurrence so no two workers share a path;
        the repeats are kept in ``BatchPlan.duplicates``.
        """
        plan = BatchPlan()
        seen: Set[str] = set()
        for item in items:
            if item.hash in seen:
                plan.duplicates.append(item)
                logger.warning("Skipping duplicate prompt in batch: %r (%s)", item.prompt, item.model)
                continue
            seen.add(item.hash)
            hit = self._cached_path(item)
            if hit is not None:
                plan.cached.append(ItemResult(
                    status="cached", prompt=item.prompt, model=item.model,
                    hash=item.hash, output_file=str(hit), cached=True,
                ))
            else:
                plan.pending.append(item)
        return plan

    def dry_run(self, items: Iterable[WorkItem], plan: Optional[BatchPlan] = None) -> DryRunResult:
        if plan is None:
            plan = self.plan(items)
        prompts = [
            DryRunPrompt(prompt=r.prompt, model=r.model, hash=r.hash, status="cached", output_file=r.output_file)
            for r in plan.cached
        ]
        prompts += [
            DryRunPrompt(prompt=i.prompt, model=i.model, hash=i.hash, status="pending")
            for i in plan.pending
        ]
        prompts += [
            DryRunPrompt(prompt=i.prompt, model=i.model, hash=i.hash, status="skipped")
            for i in plan.duplicates
        ]
        return DryRunResult(
            to_generate=len(plan.pending), cached=len(plan.cached),
            skipped=len(plan.duplicates), prompts=prompts,
        )

    def _ensure_output_dir(self) -> None:
        try:
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistFailed(f"failed to create output directory: {e}") from e

    def _record(self, result: ItemResult) -> ItemResult:
        with self._lock:
            self._results.append(result)
            self.reporter.item(result)
        return result

    def _error(self, item: WorkItem, err: Exception) -> ItemResult:
        logger.warning("Generation failed for %s (%s): %s", item.hash, item.model, err)
        return self._record(ItemResult(
            status="error", prompt=item.prompt, model=item.model, hash=item.hash, error=str(err),
        ))

    def _process(self, item: WorkItem) -> ItemResult:
        """Worker body: invoke, write, then upsert. Item errors become results."""
        try:
            image = self.invoker.generate_image(item.model, item.prompt)
            convert.save_webp(image.data, self.output_path(item))
        except ReplicateImagesError as e:
            return self._error(item, e)
        except Exception as e:
            logger.exception("Unexpected error generating %s (%s)", item.hash, item.model)
            return self._error(item, e)
        result = ItemResult(
            status="generated", prompt=item.prompt, model=item.model, hash=item.hash,
            output_file=str(self.output_path(item)), cached=False,
        )
        with self._lock:
            self.store.upsert(item.prompt, item.model, item.output_file)
            self._results.append(result)
            self.reporter.item(result)
        return result

    def _skipped(self, item: WorkItem, first: Optional[ItemResult]) -> ItemResult:
        # Points at the first occurrence's file when that one produced an image
        output_file = first.output_file if first is not None and first.status != "error" else None
        return self._record(ItemResult(
            status="skipped", prompt=item.prompt, model=item.model, hash=item.hash,
            output_file=output_file, cached=first is not None and first.cached,
        ))

    def run(self, items: Iterable[WorkItem], plan: Optional[BatchPlan] = None) -> BatchReport:
        if plan is None:
            plan = self.plan(items)
        self._results = []
        for result in plan.cached:
            self._record(result)

        pending = plan.pending
        if pending:
            self._ensure_output_dir()
            self.reporter.info(
                f"Generating {len(pending)} images (concurrency: {self.config.concurrency})...\n"
            )
            try:
                with ThreadPoolExecutor(max_workers=self.config.concurrency) as pool:
                    futures = [pool.submit(self._process, item) for item in pending]
                for fut in futures:
                    fut.result()
            finally:
                # Upserts from finished workers are kept even if one crashed
                self.store.save()
        elif plan.cached:
            self.reporter.info("All images already cached.")

        with self._lock:
            by_hash = {r.hash: r for r in self._results}
        for item in plan.duplicates:
            self._skipped(item, by_hash.get(item.hash))

        with self._lock:
            results = list(self._results)
        errored = sum(1 for r in results if r.status == "error")
        counts = BatchCounts(
            total=plan.total,
            cached=len(plan.cached),
            pending=len(pending),
            generated=sum(1 for r in results if r.status == "generated"),
            errored=errored,
            skipped=len(plan.duplicates),
        )
        outcome = classify(len(pending), errored)
        logger.info("Batch finished: %s (%s)", outcome.value, counts.model_dump())
        return BatchReport(results=results, counts=counts, outcome=outcome)

    def generate_single(self, item: WorkItem, plan: Optional[BatchPlan] = None) -> ItemResult:
        """Sequential path for one prompt: hit check, invoke, write, upsert, save.

        Errors propagate; there is nothing else to continue with.
        """
        if plan is None:
            plan = self.plan([item])
        if plan.cached:
            result = plan.cached[0]
            if self.reporter.human:
                self.reporter.info(f"Using cached image: {result.output_file}")
            else:
                self.reporter.record(result)
            return result

        self._ensure_output_dir()
        self.reporter.info(f"Generating image with {item.model}...")
        image = self.invoker.generate_image(item.model, item.prompt)
        self.reporter.info(f"Downloaded from: {image.url}")
        convert.save_webp(image.data, self.output_path(item))
        self.store.upsert(item.prompt, item.model, item.output_file)
        self.store.save()

        result = ItemResult(
            status="generated", prompt=item.prompt, model=item.model, hash=item.hash,
            output_file=str(self.output_path(item)), cached=False,
        )
        if self.reporter.human:
            self.reporter.info(f"Saved: {result.output_file}")
        else:
            self.reporter.record(result)
        return result


__all__ = [
    "BatchExecutor",
    "BatchOutcome",
    "BatchPlan",
    "BatchReport",
    "WorkItem",
    "classify",
    "work_items",
]
