"""Reassembly and verification against a manifest.

This module provides:
- reassemble: rebuild a source file by concatenating its chunks
- verify_store: check that every referenced chunk is present (and intact)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from dedupsync.core.hashing import get_chunk_hash
from dedupsync.core.types import ChunkNotFoundError, DedupError, IOFailure

if TYPE_CHECKING:
    from dedupsync.store.manifest import Manifest
    from dedupsync.store.storage import ChunkStore

logger = logging.getLogger(__name__)


class RestoreError(DedupError):
    """A file could not be reassembled from the store."""


def reassemble(manifest: Manifest, store: ChunkStore, identity: str, output: Path) -> int:
    """Rebuild a file from its chunks with an atomic write.

    Chunks are written in index order to ``<output>.tmp``, which is
    renamed over ``output`` once complete. No partial file is left behind
    on failure.

    Args:
        manifest: Manifest holding the file entry.
        store: Store holding the chunks.
        identity: File identity in the manifest.
        output: Destination path.

    Returns:
        Number of bytes written.

    Raises:
        RestoreError: If the identity is unknown or a chunk is missing/corrupt.
        IOFailure: If the output cannot be written.
    """
    entry = manifest.get(identity)
    if entry is None:
        raise RestoreError(f"No manifest entry for {identity}")

    output = Path(output)
    tmp_path = output.with_suffix(output.suffix + ".tmp")
    written = 0
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "wb") as f:
            for ref in entry.chunks:
                try:
                    data = store.get(ref.fingerprint)
                except ChunkNotFoundError as e:
                    raise RestoreError(
                        f"Chunk {ref.index} ({ref.fingerprint}) of {identity} is missing"
                    ) from e
                if len(data) != ref.length:
                    raise RestoreError(
                        f"Chunk {ref.index} of {identity} has {len(data)} bytes, "
                        f"expected {ref.length}"
                    )
                f.write(data)
                written += len(data)
        tmp_path.replace(output)
    except OSError as e:
        raise IOFailure(f"Failed to write {output}: {e}", str(output)) from e
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    logger.info(f"Restored {identity}: {len(entry.chunks)} chunks, {written} bytes")
    return written


@dataclass
class VerifyReport:
    """Result of checking a store against a manifest.

    Attributes:
        checked: Distinct fingerprints checked.
        missing: Referenced fingerprints absent from the store.
        corrupt: Fingerprints whose content no longer hashes to the name.
    """

    checked: int = 0
    missing: list[str] = field(default_factory=list)
    corrupt: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True if nothing is missing or corrupt."""
        return not self.missing and not self.corrupt


def verify_store(manifest: Manifest, store: ChunkStore, deep: bool = False) -> VerifyReport:
    """Check that every chunk referenced by the manifest is stored.

    Args:
        manifest: Manifest to check.
        store: Chunk store.
        deep: Also re-hash each chunk's content.

    Returns:
        VerifyReport listing missing and corrupt chunks.
    """
    report = VerifyReport()
    for fingerprint in sorted(manifest.referenced_fingerprints()):
        report.checked += 1
        if not deep:
            if not store.exists(fingerprint):
                report.missing.append(fingerprint)
            continue
        try:
            data = store.get(fingerprint)
        except ChunkNotFoundError:
            report.missing.append(fingerprint)
            continue
        if not data or get_chunk_hash(data) != fingerprint:
            report.corrupt.append(fingerprint)

    if report.ok:
        logger.info(f"Verified {report.checked} chunks")
    else:
        logger.error(
            f"Verification failed: {len(report.missing)} missing, "
            f"{len(report.corrupt)} corrupt of {report.checked} chunks"
        )
    return report
