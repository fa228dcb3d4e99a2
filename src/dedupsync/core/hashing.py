"""Chunk fingerprints.

A chunk's SHA-256 hex digest is both its identity and its storage key.
"""

from __future__ import annotations

import hashlib
import re

from dedupsync.core.types import EmptyInputError

# SHA-256 hex = 64 chars
FINGERPRINT_LENGTH = 64

_FINGERPRINT_RE = re.compile(r"^[0-9a-f]{64}$")


def get_chunk_hash(data: bytes | bytearray | memoryview) -> str:
    """Compute SHA-256 hash of chunk data.

    Args:
        data: Raw chunk bytes.

    Returns:
        Hex-encoded SHA-256 hash string (64 characters).

    Raises:
        EmptyInputError: If data is empty.
    """
    if len(data) == 0:
        raise EmptyInputError("Cannot fingerprint a zero-length chunk")
    return hashlib.sha256(data).hexdigest()


def is_fingerprint(value: str) -> bool:
    """Check whether a string is a well-formed chunk fingerprint."""
    return bool(_FINGERPRINT_RE.match(value))


class ChunkHasher:
    """Stateless chunk hasher, safe to share between worker threads.

    hashlib releases the GIL while digesting large buffers, so several
    threads hashing different chunks run in parallel.
    """

    def hash(self, buffer: bytes | bytearray | memoryview) -> str:
        """Return the fingerprint of a chunk buffer."""
        return get_chunk_hash(buffer)
