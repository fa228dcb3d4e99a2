"""Pipeline coordinator: chunk, hash, store and record files.

Architecture:
    file bytes -> Chunker (sequential) -> HashWorkerPool (parallel)
    -> commit in chunk-index order (single thread) -> ChunkStore.put + Manifest

For each file the reader thread chunks the stream and submits buffers to
the pool, keeping at most ``max_in_flight`` chunks outstanding. Results
are committed by walking the slots in index order, blocking on each one,
so store writes and manifest updates never depend on hash completion
order. A chunk is written to the store before it is referenced, and a
file's entry is swapped into the manifest only once every chunk is
committed.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from dedupsync.core.chunking import Chunker, create_chunker
from dedupsync.core.hashing import ChunkHasher
from dedupsync.core.types import ChunkStatus, IOFailure
from dedupsync.engine.pool import HashWorkerPool, ResultSlot
from dedupsync.store.manifest import ChunkRef, FileEntry, Manifest
from dedupsync.store.storage import ChunkStore, create_store

if TYPE_CHECKING:
    from dedupsync.core.config import DedupConfig
    from dedupsync.engine.gc import GCResult

logger = logging.getLogger(__name__)


@dataclass
class FileResult:
    """Outcome of processing one file."""

    identity: str
    size: int = 0
    chunk_count: int = 0
    new: int = 0
    changed: int = 0
    unchanged: int = 0
    written: int = 0
    deduplicated: int = 0
    bytes_written: int = 0
    skipped_unchanged: bool = False

    def record(self, status: ChunkStatus) -> None:
        """Count a committed chunk."""
        self.chunk_count += 1
        if status == ChunkStatus.NEW:
            self.new += 1
        elif status == ChunkStatus.CHANGED:
            self.changed += 1
        else:
            self.unchanged += 1


@dataclass
class RunSummary:
    """Counts reported at the end of a run.

    Attributes:
        files_processed: Files chunked during this run.
        files_unchanged: Files skipped because their stat matched the manifest.
        files_removed: Manifest entries dropped for vanished sources.
        files_retained: Entries kept although missing from the scan, because
            their directory could not be read.
        new_chunks: Chunks at indices that had no previous chunk.
        changed_chunks: Chunks whose fingerprint differs from the previous one.
        unchanged_chunks: Chunks identical to the previous run.
        chunks_written: Blobs physically written to the store.
        chunks_deduplicated: New/changed chunks already present in the store.
        bytes_written: Bytes written to the store.
        skipped: Files that failed, with the reason.
        unreadable: Source directories that could not be listed.
        timed_out: Whether the deadline stopped the run early.
        gc: Garbage collection result, if it ran.
    """

    files_processed: int = 0
    files_unchanged: int = 0
    files_removed: int = 0
    files_retained: int = 0
    new_chunks: int = 0
    changed_chunks: int = 0
    unchanged_chunks: int = 0
    chunks_written: int = 0
    chunks_deduplicated: int = 0
    bytes_written: int = 0
    skipped: dict[str, str] = field(default_factory=dict)
    unreadable: list[str] = field(default_factory=list)
    timed_out: bool = False
    gc: GCResult | None = None

    def add(self, result: FileResult) -> None:
        """Fold a file result into the totals."""
        if result.skipped_unchanged:
            self.files_unchanged += 1
        else:
            self.files_processed += 1
        self.new_chunks += result.new
        self.changed_chunks += result.changed
        self.unchanged_chunks += result.unchanged
        self.chunks_written += result.written
        self.chunks_deduplicated += result.deduplicated
        self.bytes_written += result.bytes_written

    def lines(self) -> list[str]:
        """Return a human-readable report."""
        lines = [
            f"Files processed: {self.files_processed}",
            f"Files unchanged: {self.files_unchanged}",
            f"Files removed:   {self.files_removed}",
            f"Files retained:  {self.files_retained}",
            f"Chunks new:       {self.new_chunks}",
            f"Chunks changed:   {self.changed_chunks}",
            f"Chunks unchanged: {self.unchanged_chunks}",
            f"Chunks written:   {self.chunks_written} ({self.bytes_written} bytes)",
            f"Chunks deduplicated: {self.chunks_deduplicated}",
        ]
        if self.gc is not None:
            lines.append(f"Chunks removed by GC: {self.gc.deleted}")
        if self.timed_out:
            lines.append("Run stopped early: deadline reached")
        for identity, reason in sorted(self.skipped.items()):
            lines.append(f"Skipped {identity}: {reason}")
        for directory in self.unreadable:
            lines.append(f"Unreadable directory {directory or '.'}: entries kept")
        return lines


class PipelineCoordinator:
    """Runs files through chunking, parallel hashing and ordered commit.

    Usage:
        coordinator = PipelineCoordinator.from_config(config)
        manifest = Manifest.load(config.manifest_path)
        summary = coordinator.run(manifest, {"a.vbk": Path("/src/a.vbk")})
    """

    def __init__(
        self,
        chunker: Chunker,
        store: ChunkStore,
        workers: int | None = None,
        hasher: ChunkHasher | None = None,
        skip_unchanged: bool = True,
        max_in_flight: int | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            chunker: Chunk boundary strategy.
            store: Content-addressed chunk store.
            workers: Hash worker count (defaults to CPU count).
            hasher: Chunk hasher used by the workers.
            skip_unchanged: Reuse the recorded entry when size, mtime, ctime
                and inode all match.
            max_in_flight: Chunks buffered ahead of the commit point
                (defaults to twice the worker count).
        """
        self._chunker = chunker
        self._store = store
        self._hasher = hasher or ChunkHasher()
        self._workers = workers
        self._skip_unchanged = skip_unchanged
        self._max_in_flight = max_in_flight

    @classmethod
    def from_config(cls, config: DedupConfig, store: ChunkStore | None = None) -> PipelineCoordinator:
        """Build a coordinator from a run configuration."""
        return cls(
            chunker=create_chunker(config),
            store=store or create_store(config),
            workers=config.workers,
            skip_unchanged=config.skip_unchanged,
        )

    @property
    def store(self) -> ChunkStore:
        """Return the chunk store."""
        return self._store

    def _create_pool(self) -> HashWorkerPool:
        return HashWorkerPool(max_workers=self._workers, hasher=self._hasher)

    def process_file(self, manifest: Manifest, identity: str, path: Path) -> FileResult:
        """Chunk one file and update its manifest entry.

        Raises:
            IOFailure: If the file or the store cannot be read/written. The
                manifest entry is left as it was.
            EmptyInputError: If a zero-length chunk reached the hasher.
        """
        with self._create_pool() as pool:
            return self._process_file(pool, manifest, identity, Path(path))

    def run(
        self,
        manifest: Manifest,
        files: Mapping[str, Path],
        timeout: float | None = None,
        removable: Callable[[str], bool] | None = None,
    ) -> RunSummary:
        """Process a set of files, drop vanished entries, then persist once.

        Per-file I/O failures are logged and reported in the summary; other
        files are still processed. The timeout is only checked between files.

        Args:
            manifest: Manifest loaded at process start; updated in place.
            files: Source files to process, keyed by identity.
            timeout: Optional run budget in seconds.
            removable: Decides whether an entry missing from ``files`` is
                really gone. Entries it rejects are kept unchanged. By
                default every missing entry is dropped.

        Returns:
            The run summary.

        Raises:
            EmptyInputError: On a chunk sequencing bug.
            IOFailure: If the manifest cannot be persisted.
        """
        summary = RunSummary()
        deadline = time.monotonic() + timeout if timeout is not None else None

        with self._create_pool() as pool:
            for identity in sorted(files):
                if deadline is not None and time.monotonic() >= deadline:
                    logger.warning(f"Deadline reached, stopping before {identity}")
                    summary.timed_out = True
                    break
                try:
                    result = self._process_file(pool, manifest, identity, Path(files[identity]))
                except IOFailure as e:
                    logger.warning(f"Skipping {identity}: {e}")
                    summary.skipped[identity] = str(e)
                    continue
                summary.add(result)

        for identity in manifest.identities():
            if identity in files:
                continue
            if removable is not None and not removable(identity):
                summary.files_retained += 1
                logger.warning(f"Keeping {identity}: its directory could not be scanned")
                continue
            manifest.remove(identity)
            summary.files_removed += 1
            logger.info(f"Removed {identity} from manifest (source gone)")

        manifest.persist()
        return summary

    def _process_file(
        self,
        pool: HashWorkerPool,
        manifest: Manifest,
        identity: str,
        path: Path,
    ) -> FileResult:
        prior = manifest.get(identity)
        try:
            stat = path.stat()
        except OSError as e:
            raise IOFailure(f"Cannot stat {path}: {e}", str(path)) from e

        if self._skip_unchanged and prior is not None and prior.matches_stat(stat):
            logger.debug(f"Unchanged (size/mtime/ctime/inode): {identity}")
            return FileResult(
                identity=identity,
                size=prior.size,
                chunk_count=len(prior.chunks),
                unchanged=len(prior.chunks),
                skipped_unchanged=True,
            )

        result = FileResult(identity=identity)
        refs: list[ChunkRef] = []
        in_flight: deque[ResultSlot] = deque()
        max_in_flight = self._max_in_flight or 2 * pool.max_workers

        try:
            with open(path, "rb") as f:
                for span in self._chunker.chunks(f):
                    in_flight.append(pool.submit(span))
                    if len(in_flight) >= max_in_flight:
                        self._commit(in_flight.popleft(), prior, refs, result)
        except OSError as e:
            raise IOFailure(f"Failed to read {path}: {e}", str(path)) from e

        while in_flight:
            self._commit(in_flight.popleft(), prior, refs, result)

        result.size = sum(ref.length for ref in refs)
        manifest.upsert_chunks(identity, refs, size=result.size, stat=stat)
        logger.info(
            f"Chunked {identity}: {result.chunk_count} chunks "
            f"({result.new} new, {result.changed} changed, {result.unchanged} unchanged, "
            f"{result.written} written)"
        )
        return result

    def _commit(
        self,
        slot: ResultSlot,
        prior: FileEntry | None,
        refs: list[ChunkRef],
        result: FileResult,
    ) -> None:
        """Commit the next chunk in index order."""
        fingerprint = slot.result()
        span = slot.span
        index = len(refs)
        if span.index != index:
            raise RuntimeError(f"Out-of-order commit: expected chunk {index}, got {span.index}")

        if prior is None or index >= len(prior.chunks):
            status = ChunkStatus.NEW
        elif prior.chunks[index].fingerprint != fingerprint:
            status = ChunkStatus.CHANGED
        else:
            status = ChunkStatus.UNCHANGED

        if status != ChunkStatus.UNCHANGED:
            if self._store.put(fingerprint, span.data):
                result.written += 1
                result.bytes_written += span.length
            else:
                result.deduplicated += 1

        logger.debug(f"Chunk {index} {fingerprint[:8]}... {status.value}")
        refs.append(ChunkRef(index=index, fingerprint=fingerprint, length=span.length))
        result.record(status)
