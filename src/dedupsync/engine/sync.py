"""End-to-end deduplication run.

Flow:
    scan source -> load manifest -> pipeline (chunk/hash/store, persist once)
    -> garbage collection

Garbage collection only starts after the manifest is persisted; a
persistence failure aborts the run before anything is deleted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dedupsync.engine.gc import GarbageCollector
from dedupsync.engine.pipeline import PipelineCoordinator, RunSummary
from dedupsync.engine.scanner import IgnorePatterns, scan_source
from dedupsync.store.manifest import Manifest
from dedupsync.store.storage import create_store

if TYPE_CHECKING:
    from dedupsync.core.config import DedupConfig

logger = logging.getLogger(__name__)


def run_sync(
    config: DedupConfig,
    timeout: float | None = None,
    collect_garbage: bool = True,
) -> RunSummary:
    """Deduplicate the source tree of ``config`` into its target root.

    Args:
        config: Run configuration.
        timeout: Optional run budget in seconds, checked between files.
        collect_garbage: Sweep orphan chunks after persisting.

    Returns:
        The run summary (with the GC result when it ran).

    Raises:
        ManifestCorruptError: If the existing manifest is unreadable.
        EmptyInputError: On a chunk sequencing bug.
        IOFailure: If the manifest cannot be persisted.
    """
    logger.info(
        f"Deduplicating {config.source_root} -> {config.target_root} "
        f"({config.strategy.value}, {config.workers} workers)"
    )
    config.target_root.mkdir(parents=True, exist_ok=True)

    # Load first: a corrupt manifest must stop the run before any work
    manifest = Manifest.load(config.manifest_path)
    store = create_store(config)

    scan = scan_source(
        config.source_root,
        ignore=IgnorePatterns(config.ignore_patterns),
        exclude=[config.target_root],
    )

    coordinator = PipelineCoordinator.from_config(config, store=store)
    # Entries under unreadable directories are kept, so GC keeps their chunks
    summary = coordinator.run(manifest, scan.files, timeout=timeout, removable=scan.covers)
    summary.unreadable = list(scan.unreadable)

    if collect_garbage:
        summary.gc = GarbageCollector(store).collect(manifest)

    logger.info(
        f"Run complete: {summary.files_processed} processed, "
        f"{summary.files_unchanged} unchanged, {len(summary.skipped)} skipped"
    )
    return summary
