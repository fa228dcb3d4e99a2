"""Manifest mapping source files to their ordered chunk fingerprints.

This module provides:
- ChunkRef, FileEntry, ManifestDocument: validated pydantic models
- Manifest: in-memory manifest with load/upsert/remove/persist

The manifest is the single source of truth for both reassembly and
garbage collection. It is loaded once per run, mutated in memory by the
committing thread only, and persisted once as a whole document via
write-to-temp then rename.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from dedupsync.core.hashing import is_fingerprint
from dedupsync.core.types import IOFailure, ManifestCorruptError

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1


class ChunkRef(BaseModel):
    """Reference to one chunk of a file."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    fingerprint: str
    length: int = Field(gt=0)

    @field_validator("fingerprint")
    @classmethod
    def _check_fingerprint(cls, value: str) -> str:
        if not is_fingerprint(value):
            raise ValueError(f"invalid fingerprint {value!r}")
        return value


class FileEntry(BaseModel):
    """A source file and its ordered chunk list.

    Attributes:
        identity: Path relative to the source root (POSIX separators).
        size: File size in bytes when chunked; equals the sum of chunk lengths.
        mtime_ns: File modification time (ns) when chunked.
        ctime_ns: Inode change time (ns) when chunked; unlike mtime it cannot
            be set back by tools that preserve timestamps.
        inode: Inode number when chunked.
        chunks: Chunk references in index order.
    """

    identity: str
    size: int = Field(ge=0)
    mtime_ns: int | None = None
    ctime_ns: int | None = None
    inode: int | None = None
    chunks: list[ChunkRef] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_chunks(self) -> FileEntry:
        for position, ref in enumerate(self.chunks):
            if ref.index != position:
                raise ValueError(
                    f"chunk indices of {self.identity!r} are not contiguous "
                    f"(expected {position}, got {ref.index})"
                )
        total = sum(ref.length for ref in self.chunks)
        if total != self.size:
            raise ValueError(
                f"chunk lengths of {self.identity!r} sum to {total}, expected {self.size}"
            )
        return self

    @property
    def fingerprints(self) -> list[str]:
        """Return the chunk fingerprints in index order."""
        return [ref.fingerprint for ref in self.chunks]

    def matches_stat(self, stat: os.stat_result) -> bool:
        """Check whether a file still looks exactly as when it was chunked.

        All of size, mtime, ctime and inode must match; entries recorded
        without them never match.
        """
        return (
            self.mtime_ns is not None
            and self.ctime_ns is not None
            and self.inode is not None
            and self.size == stat.st_size
            and self.mtime_ns == stat.st_mtime_ns
            and self.ctime_ns == stat.st_ctime_ns
            and self.inode == stat.st_ino
        )


class ManifestDocument(BaseModel):
    """Persisted form of the manifest."""

    version: int = MANIFEST_VERSION
    files: dict[str, FileEntry] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_keys(self) -> ManifestDocument:
        if self.version != MANIFEST_VERSION:
            raise ValueError(f"unsupported manifest version {self.version}")
        for key, entry in self.files.items():
            if key != entry.identity:
                raise ValueError(f"entry key {key!r} does not match identity {entry.identity!r}")
        return self


class Manifest:
    """In-memory manifest bound to its on-disk location.

    Not thread-safe: only the pipeline's committing thread mutates it.
    """

    def __init__(self, path: Path, entries: dict[str, FileEntry] | None = None) -> None:
        """Initialize a manifest.

        Args:
            path: Canonical location of the persisted manifest.
            entries: Initial entries keyed by identity.
        """
        self._path = Path(path)
        self._entries: dict[str, FileEntry] = dict(entries or {})
        self._persisted = False

    @property
    def path(self) -> Path:
        """Return the manifest file path."""
        return self._path

    @property
    def persisted(self) -> bool:
        """True once persist() succeeded and no mutation happened since."""
        return self._persisted

    @classmethod
    def load(cls, path: Path) -> Manifest:
        """Load a manifest, or return an empty one if none was persisted.

        Raises:
            ManifestCorruptError: If the file exists but cannot be parsed or
                fails validation.
            IOFailure: If the file exists but cannot be read.
        """
        path = Path(path)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.info(f"No manifest at {path}, starting empty")
            return cls(path)
        except OSError as e:
            raise IOFailure(f"Failed to read manifest {path}: {e}", str(path)) from e

        try:
            document = ManifestDocument.model_validate_json(raw)
        except ValidationError as e:
            raise ManifestCorruptError(f"Manifest {path} is corrupt: {e}") from e

        manifest = cls.from_document(path, document)
        # In-memory state matches the file on disk
        manifest._persisted = True
        logger.info(f"Loaded manifest with {len(manifest)} files from {path}")
        return manifest

    @classmethod
    def from_document(cls, path: Path, document: ManifestDocument) -> Manifest:
        """Build a manifest from a validated document."""
        return cls(path, document.files)

    def to_document(self) -> ManifestDocument:
        """Return the persistable document for the current entries."""
        return ManifestDocument(files=dict(sorted(self._entries.items())))

    # === Entry operations ===

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(list(self._entries.values()))

    def get(self, identity: str) -> FileEntry | None:
        """Get the entry for a file identity."""
        return self._entries.get(identity)

    def identities(self) -> list[str]:
        """Return all file identities, sorted."""
        return sorted(self._entries)

    def upsert(self, entry: FileEntry) -> None:
        """Insert or wholesale replace a file's entry."""
        self._entries[entry.identity] = entry
        self._persisted = False

    def upsert_chunks(
        self,
        identity: str,
        chunks: Iterable[ChunkRef],
        size: int | None = None,
        stat: os.stat_result | None = None,
    ) -> FileEntry:
        """Replace a file's chunk list.

        Args:
            identity: File identity.
            chunks: Chunk references in index order.
            size: File size (defaults to the sum of chunk lengths).
            stat: Stat of the file when it was chunked, if known.

        Returns:
            The stored entry.
        """
        chunk_list = list(chunks)
        if size is None:
            size = sum(ref.length for ref in chunk_list)
        stamps = {}
        if stat is not None:
            stamps = {
                "mtime_ns": stat.st_mtime_ns,
                "ctime_ns": stat.st_ctime_ns,
                "inode": stat.st_ino,
            }
        entry = FileEntry(identity=identity, size=size, chunks=chunk_list, **stamps)
        self.upsert(entry)
        return entry

    def remove(self, identity: str) -> bool:
        """Remove a file's entry.

        Returns:
            True if an entry was removed.
        """
        if self._entries.pop(identity, None) is None:
            return False
        self._persisted = False
        return True

    def referenced_fingerprints(self) -> set[str]:
        """Return the union of all fingerprints referenced by any entry."""
        return {ref.fingerprint for entry in self._entries.values() for ref in entry.chunks}

    # === Persistence ===

    def persist(self) -> None:
        """Atomically replace the on-disk manifest with the current entries.

        Raises:
            IOFailure: If the manifest cannot be written.
        """
        payload = self.to_document().model_dump(mode="json")
        data = json.dumps(payload, indent=1).encode("utf-8")

        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}-", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as e:
            raise IOFailure(f"Failed to persist manifest {self._path}: {e}", str(self._path)) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        self._persisted = True
        logger.info(f"Persisted manifest with {len(self)} files to {self._path}")
