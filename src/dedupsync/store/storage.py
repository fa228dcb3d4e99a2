"""Content-addressed chunk storage.

This module provides:
- Abstract interface for chunk storage
- LocalFSChunkStore: write-once blob directory keyed by fingerprint
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from dedupsync.core.hashing import is_fingerprint
from dedupsync.core.types import ChunkNotFoundError, IOFailure

if TYPE_CHECKING:
    from dedupsync.core.config import DedupConfig

logger = logging.getLogger(__name__)

CHUNK_SUFFIX = ".chunk"
TEMP_SUFFIX = ".tmp"


class ChunkStore(ABC):
    """Abstract interface for content-addressed chunk storage."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of where chunks are stored."""

    @abstractmethod
    def put(self, fingerprint: str, data: bytes) -> bool:
        """Store a chunk unless it already exists.

        A blob becomes visible to ``exists`` only once fully written.

        Args:
            fingerprint: SHA-256 hash of the chunk.
            data: Chunk bytes.

        Returns:
            True if this call wrote the blob, False if it already existed.
        """

    @abstractmethod
    def get(self, fingerprint: str) -> bytes:
        """Retrieve a chunk.

        Raises:
            ChunkNotFoundError: If chunk doesn't exist.
        """

    @abstractmethod
    def exists(self, fingerprint: str) -> bool:
        """Check if a chunk exists in storage."""

    @abstractmethod
    def delete(self, fingerprint: str) -> bool:
        """Delete a chunk from storage.

        Returns:
            True if chunk was deleted, False if it didn't exist.
        """

    @abstractmethod
    def list(self) -> Iterator[str]:
        """Yield the fingerprints of all stored chunks."""

    def purge_temp_files(self, older_than: float = 0.0) -> int:
        """Remove leftovers of interrupted writes.

        Stores without temporary files have nothing to purge.

        Returns:
            Number of files removed.
        """
        return 0


class LocalFSChunkStore(ChunkStore):
    """Chunk store on the local filesystem.

    Chunks are stored in subdirectories based on hash prefix
    to avoid too many files in a single directory:
    ``<base>/ab/abcdef....chunk``.

    Writes go to a temporary file in the destination directory, are
    fsynced, then renamed into place. Two writers racing on the same
    fingerprint both succeed and leave identical bytes behind.
    """

    def __init__(self, base_path: Path | str, create: bool = True) -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for chunk storage.
            create: Create the directory if missing. Read-only users pass
                False and see an empty store instead.
        """
        self._base_path = Path(base_path).resolve()
        if create:
            self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        """Return the store directory."""
        return self._base_path

    @property
    def location(self) -> str:
        """Return the local storage path."""
        return f"Local filesystem: {self._base_path}"

    def _chunk_path(self, fingerprint: str) -> Path:
        """Get the file path for a chunk.

        Uses first 2 characters of hash as subdirectory prefix.
        """
        if not is_fingerprint(fingerprint):
            raise ValueError(f"Invalid chunk fingerprint: {fingerprint!r}")
        return self._base_path / fingerprint[:2] / f"{fingerprint}{CHUNK_SUFFIX}"

    def put(self, fingerprint: str, data: bytes) -> bool:
        """Store a chunk atomically, skipping existing blobs."""
        path = self._chunk_path(fingerprint)
        if path.exists():
            return False

        tmp_name: str | None = None
        try:
            path.parent.mkdir(exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{fingerprint[:16]}-", suffix=TEMP_SUFFIX
            )
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise IOFailure(f"Failed to write chunk {fingerprint}: {e}", str(path)) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        logger.debug(f"Stored chunk {fingerprint[:8]}... ({len(data)} bytes)")
        return True

    def get(self, fingerprint: str) -> bytes:
        """Retrieve a chunk."""
        path = self._chunk_path(fingerprint)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise ChunkNotFoundError(f"Chunk not found: {fingerprint}") from e
        except OSError as e:
            raise IOFailure(f"Failed to read chunk {fingerprint}: {e}", str(path)) from e

    def exists(self, fingerprint: str) -> bool:
        """Check if a chunk exists."""
        return self._chunk_path(fingerprint).exists()

    def delete(self, fingerprint: str) -> bool:
        """Delete a chunk."""
        path = self._chunk_path(fingerprint)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def list(self) -> Iterator[str]:
        """Yield fingerprints of stored chunks, ignoring temp and foreign files."""
        if not self._base_path.is_dir():
            return
        for prefix_dir in sorted(self._base_path.iterdir()):
            if not prefix_dir.is_dir() or len(prefix_dir.name) != 2:
                continue
            for entry in sorted(prefix_dir.iterdir()):
                if entry.suffix != CHUNK_SUFFIX:
                    continue
                fingerprint = entry.stem
                if is_fingerprint(fingerprint) and fingerprint.startswith(prefix_dir.name):
                    yield fingerprint

    def temp_files(self) -> Iterator[Path]:
        """Yield leftover temporary files from interrupted writes."""
        yield from self._base_path.glob(f"??/.*{TEMP_SUFFIX}")

    def purge_temp_files(self, older_than: float = 0.0) -> int:
        """Remove temporary files left behind by interrupted writes.

        Args:
            older_than: Only remove files whose mtime is at least this many
                seconds in the past.

        Returns:
            Number of files removed.
        """
        cutoff = time.time() - older_than
        removed = 0
        for tmp_path in list(self.temp_files()):
            try:
                if tmp_path.stat().st_mtime > cutoff:
                    continue
                tmp_path.unlink()
            except FileNotFoundError:
                continue
            removed += 1
            logger.debug(f"Removed stale temp file {tmp_path.name}")
        return removed


def create_store(config: DedupConfig) -> LocalFSChunkStore:
    """Factory function to create the chunk store for a configuration."""
    return LocalFSChunkStore(config.store_path)
