"""Shared types for dedupsync.

This module defines the exception taxonomy and enums used by the
chunking core, the store and the pipeline.
"""

from __future__ import annotations

from enum import Enum


class DedupError(Exception):
    """Base exception for dedupsync errors."""


class IOFailure(DedupError):
    """Read or write error on a source file or on the chunk store.

    Fatal for the affected file only: the pipeline skips the file and
    keeps processing the rest of the run.

    Attributes:
        path: Path of the file that failed, if known.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class EmptyInputError(DedupError, ValueError):
    """A zero-length buffer was handed to the chunk hasher.

    Chunkers never yield empty chunks, so this signals a sequencing bug
    and aborts the whole run.
    """


class ManifestCorruptError(DedupError):
    """The persisted manifest could not be parsed or failed validation."""


class UnpersistedManifestError(DedupError):
    """Garbage collection was asked to sweep against an unsaved manifest."""


class ChunkNotFoundError(DedupError):
    """Raised when a chunk is not found in the store."""


class ConfigError(DedupError, ValueError):
    """Invalid configuration value."""


class ChunkStrategy(str, Enum):
    """How chunk boundaries are chosen."""

    FIXED = "fixed"
    CONTENT_DEFINED = "content-defined"
    FASTCDC = "fastcdc"


class ChunkStatus(str, Enum):
    """Classification of a committed chunk against the previous manifest."""

    NEW = "new"  # No chunk recorded at this index before
    CHANGED = "changed"  # Different fingerprint at this index
    UNCHANGED = "unchanged"  # Same fingerprint, store write skipped
