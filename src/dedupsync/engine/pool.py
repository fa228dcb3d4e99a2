"""Worker pool for concurrent chunk hashing.

This module provides:
- HashWorkerPool: Manages a pool of threads hashing chunk buffers
- ResultSlot: Per-index result slot filled by exactly one worker
- HashTask: Represents a queued task for the pool

Workers receive an owned chunk buffer and hand back an owned fingerprint
through the task's slot. They never touch the manifest or the store.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from dedupsync.core.config import default_workers
from dedupsync.core.hashing import ChunkHasher

if TYPE_CHECKING:
    from types import TracebackType

    from dedupsync.core.chunking import ChunkSpan

logger = logging.getLogger(__name__)


class PoolState(Enum):
    """State of the worker pool."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()


class ResultSlot:
    """Result of hashing one chunk, addressed by chunk index.

    Set once by a worker; the committing thread blocks on ``result()``.
    """

    def __init__(self, span: ChunkSpan) -> None:
        self.span = span
        self._done = threading.Event()
        self._fingerprint: str | None = None
        self._error: BaseException | None = None

    @property
    def index(self) -> int:
        """Chunk index this slot belongs to."""
        return self.span.index

    def done(self) -> bool:
        """Check whether the worker has filled this slot."""
        return self._done.is_set()

    def set_result(self, fingerprint: str) -> None:
        self._fingerprint = fingerprint
        self._done.set()

    def set_error(self, error: BaseException) -> None:
        self._error = error
        self._done.set()

    def result(self, timeout: float | None = None) -> str:
        """Wait for the fingerprint.

        Args:
            timeout: Maximum seconds to wait (None waits forever).

        Returns:
            The chunk fingerprint.

        Raises:
            TimeoutError: If the worker did not finish in time.
            Exception: Whatever the hasher raised for this chunk.
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Hash of chunk {self.index} not ready after {timeout}s")
        if self._error is not None:
            raise self._error
        if self._fingerprint is None:
            raise RuntimeError(f"Slot of chunk {self.index} completed without a result")
        return self._fingerprint


@dataclass
class HashTask:
    """A chunk queued for hashing.

    Attributes:
        slot: Slot receiving the fingerprint (also owns the chunk buffer).
    """

    slot: ResultSlot


class HashWorkerPool:
    """Pool of threads hashing chunk buffers.

    Usage:
        with HashWorkerPool(max_workers=4) as pool:
            slots = [pool.submit(span) for span in spans]
            fingerprints = [slot.result() for slot in slots]
    """

    def __init__(
        self,
        max_workers: int | None = None,
        hasher: ChunkHasher | None = None,
    ) -> None:
        """Initialize the worker pool.

        Args:
            max_workers: Number of hashing threads. Defaults to CPU count.
            hasher: Chunk hasher shared by all workers.
        """
        self._max_workers = max_workers or default_workers()
        self._hasher = hasher or ChunkHasher()

        self._pool_state = PoolState.STOPPED
        self._lock = threading.Lock()
        self._task_queue: queue.Queue[HashTask | None] = queue.Queue()
        self._workers: list[threading.Thread] = []

        # Statistics
        self._completed_count = 0
        self._error_count = 0

    @property
    def state(self) -> PoolState:
        """Get current pool state."""
        return self._pool_state

    @property
    def max_workers(self) -> int:
        """Get the number of worker threads."""
        return self._max_workers

    @property
    def queue_size(self) -> int:
        """Get number of queued tasks."""
        return self._task_queue.qsize()

    @property
    def completed_count(self) -> int:
        """Get number of hashed chunks."""
        with self._lock:
            return self._completed_count

    @property
    def error_count(self) -> int:
        """Get number of failed hashes."""
        with self._lock:
            return self._error_count

    def start(self) -> None:
        """Start the worker pool."""
        with self._lock:
            if self._pool_state != PoolState.STOPPED:
                logger.warning("Hash worker pool already running")
                return

            self._pool_state = PoolState.RUNNING

            for i in range(self._max_workers):
                thread = threading.Thread(
                    target=self._worker_loop,
                    name=f"HashWorker-{i}",
                    daemon=True,
                )
                thread.start()
                self._workers.append(thread)

            logger.debug(f"Hash worker pool started with {self._max_workers} workers")

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the worker pool after queued tasks are drained.

        Args:
            timeout: Maximum time to wait for workers to finish.
        """
        with self._lock:
            if self._pool_state == PoolState.STOPPED:
                return

            self._pool_state = PoolState.STOPPING

            # Send poison pills to stop workers
            for _ in self._workers:
                self._task_queue.put(None)

        for worker in self._workers:
            worker.join(timeout=timeout / len(self._workers))

        with self._lock:
            self._pool_state = PoolState.STOPPED
            self._workers.clear()
            logger.debug("Hash worker pool stopped")

    def __enter__(self) -> HashWorkerPool:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    def submit(self, span: ChunkSpan) -> ResultSlot:
        """Queue a chunk for hashing.

        Args:
            span: Chunk to hash; the pool takes ownership of its buffer.

        Returns:
            The slot that will receive the fingerprint.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if self._pool_state != PoolState.RUNNING:
            raise RuntimeError("Cannot submit task: hash worker pool not running")

        slot = ResultSlot(span)
        self._task_queue.put(HashTask(slot=slot))
        return slot

    def _worker_loop(self) -> None:
        """Main loop for worker threads."""
        while True:
            task = self._task_queue.get()
            if task is None:
                # Poison pill - stop worker
                break
            self._process_task(task)

    def _process_task(self, task: HashTask) -> None:
        """Hash one chunk and fill its slot."""
        slot = task.slot
        try:
            fingerprint = self._hasher.hash(slot.span.data)
        except Exception as e:
            with self._lock:
                self._error_count += 1
            logger.debug(f"Hashing chunk {slot.index} failed: {e}")
            slot.set_error(e)
            return

        with self._lock:
            self._completed_count += 1
        slot.set_result(fingerprint)
