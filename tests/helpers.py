"""Test helpers shared across test modules."""

from __future__ import annotations

import errno
import os
import random
import threading
import time
from pathlib import Path

from dedupsync.core.hashing import ChunkHasher
from dedupsync.core.types import ChunkNotFoundError
from dedupsync.store.storage import ChunkStore

# Small bounds keep the pure-Python rolling hash fast in tests
MIN_SIZE = 256
AVG_SIZE = 1024
MAX_SIZE = 4096
WINDOW = 32


def random_bytes(size: int, seed: int = 0) -> bytes:
    """Deterministic pseudo-random bytes."""
    return random.Random(seed).randbytes(size)


class SlowHasher(ChunkHasher):
    """Hasher sleeping a random short time to shuffle completion order."""

    def __init__(self, seed: int = 0, max_delay: float = 0.005) -> None:
        self._random = random.Random(seed)
        self._max_delay = max_delay
        self._lock = threading.Lock()
        self.threads: set[str] = set()

    def hash(self, buffer):
        with self._lock:
            delay = self._random.uniform(0, self._max_delay)
            self.threads.add(threading.current_thread().name)
        time.sleep(delay)
        return super().hash(buffer)


def deny_listing(monkeypatch, name: str) -> None:
    """Make ``os.scandir`` fail with EACCES for directories called ``name``."""
    real_scandir = os.scandir

    def scandir(path="."):
        if not isinstance(path, int) and Path(os.fsdecode(path)).name == name:
            raise PermissionError(errno.EACCES, "Permission denied", os.fsdecode(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", scandir)


class MemoryChunkStore(ChunkStore):
    """Dict-backed store for exercising code against the ChunkStore interface."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}

    @property
    def location(self) -> str:
        return "memory"

    def put(self, fingerprint: str, data: bytes) -> bool:
        if fingerprint in self.blobs:
            return False
        self.blobs[fingerprint] = data
        return True

    def get(self, fingerprint: str) -> bytes:
        try:
            return self.blobs[fingerprint]
        except KeyError:
            raise ChunkNotFoundError(f"Chunk not found: {fingerprint}") from None

    def exists(self, fingerprint: str) -> bool:
        return fingerprint in self.blobs

    def delete(self, fingerprint: str) -> bool:
        return self.blobs.pop(fingerprint, None) is not None

    def list(self):
        yield from sorted(self.blobs)
