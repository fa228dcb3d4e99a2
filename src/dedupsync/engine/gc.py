"""Orphan chunk garbage collection.

Runs strictly after the manifest is persisted: every blob in the store
that the persisted manifest does not reference is deleted. A crash at any
earlier point only leaves extra blobs behind, never missing ones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dedupsync.core.types import UnpersistedManifestError

if TYPE_CHECKING:
    from dedupsync.store.manifest import Manifest
    from dedupsync.store.storage import ChunkStore

logger = logging.getLogger(__name__)


@dataclass
class GCResult:
    """Result of a garbage collection pass.

    Attributes:
        scanned: Blobs listed in the store.
        deleted: Orphan blobs removed.
        kept: Blobs still referenced by the manifest.
        temp_files_removed: Leftover temp files from interrupted writes.
    """

    scanned: int = 0
    deleted: int = 0
    kept: int = 0
    temp_files_removed: int = 0


class GarbageCollector:
    """Deletes stored chunks not referenced by a persisted manifest."""

    def __init__(self, store: ChunkStore, temp_grace_period: float = 3600.0) -> None:
        """Initialize the collector.

        Args:
            store: Chunk store to sweep.
            temp_grace_period: Minimum age in seconds of temp files to purge.
        """
        self._store = store
        self._temp_grace_period = temp_grace_period

    def collect(self, manifest: Manifest) -> GCResult:
        """Delete every stored chunk the manifest does not reference.

        Args:
            manifest: Manifest that was just persisted.

        Returns:
            Counts of scanned, deleted and kept blobs.

        Raises:
            UnpersistedManifestError: If the manifest has unsaved changes.
        """
        if not manifest.persisted:
            raise UnpersistedManifestError(
                "Refusing to collect garbage against a manifest that is not persisted"
            )

        reachable = manifest.referenced_fingerprints()
        result = GCResult()

        # Materialize the listing before deleting from the directories
        for fingerprint in list(self._store.list()):
            result.scanned += 1
            if fingerprint in reachable:
                result.kept += 1
                continue
            if self._store.delete(fingerprint):
                result.deleted += 1
                logger.debug(f"Deleted orphan chunk {fingerprint[:8]}...")

        result.temp_files_removed = self._store.purge_temp_files(self._temp_grace_period)

        logger.info(
            f"GC: scanned {result.scanned} chunks, deleted {result.deleted}, "
            f"kept {result.kept}"
        )
        return result
