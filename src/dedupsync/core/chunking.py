"""Chunk boundary detection for dedupsync.

This module provides three strategies producing the same contract, a
lazy sequence of contiguous chunks covering the input exactly once:
- ContentDefinedChunker: Rabin-Karp rolling hash boundaries (streaming)
- FixedSizeChunker: constant-length chunks
- FastCDCChunker: gear-hash boundaries from the fastcdc library

Content-defined boundaries are stable: inserting or appending bytes
only moves the boundaries near the edit.
"""

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from fastcdc import fastcdc

from dedupsync.core.config import (
    AVG_CHUNK_SIZE,
    FIXED_CHUNK_SIZE,
    MAX_CHUNK_SIZE,
    MIN_CHUNK_SIZE,
    READ_SIZE,
    WINDOW_SIZE,
)
from dedupsync.core.rolling import RollingHasher
from dedupsync.core.types import ChunkStrategy, ConfigError

if TYPE_CHECKING:
    from dedupsync.core.config import DedupConfig

# Smallest sizes accepted by the fastcdc library
FASTCDC_MIN_SIZE = 64
FASTCDC_MIN_AVG = 256
FASTCDC_MIN_MAX = 1024


@dataclass(frozen=True)
class ChunkSpan:
    """A chunk's position in its source and its materialized bytes."""

    index: int
    offset: int
    data: bytes

    @property
    def length(self) -> int:
        """Return the size of this chunk in bytes."""
        return len(self.data)

    @property
    def end(self) -> int:
        """Return the offset just past this chunk."""
        return self.offset + len(self.data)


def read_blocks(stream: BinaryIO, read_size: int) -> Iterator[bytes]:
    """Yield successive reads from a stream until EOF."""
    while True:
        block = stream.read(read_size)
        if not block:
            return
        yield block


class Chunker(ABC):
    """Abstract chunk boundary strategy."""

    @abstractmethod
    def chunks(self, stream: BinaryIO) -> Iterator[ChunkSpan]:
        """Split a stream into chunks.

        The sequence is lazy and consumes the stream; it covers every byte
        exactly once, in order, and never yields an empty chunk.

        Args:
            stream: Binary stream positioned at the start of the data.

        Yields:
            ChunkSpan objects with contiguous indices and offsets.
        """

    def spans(self, stream: BinaryIO) -> Iterator[tuple[int, int]]:
        """Yield ``(offset, length)`` pairs for each chunk of a stream."""
        for chunk in self.chunks(stream):
            yield chunk.offset, chunk.length


class ContentDefinedChunker(Chunker):
    """Rolling-hash content-defined chunker.

    Once a chunk holds at least ``min_size`` bytes, a boundary is declared
    after any byte where the low ``log2(avg_size)`` bits of the rolling
    fingerprint are zero. A boundary is forced at ``max_size``.

    Because ``window_size <= min_size``, the window at every check point
    lies inside the current chunk. The hasher is primed from scratch when
    the chunk reaches ``min_size`` and rolled afterwards; the fingerprint
    only depends on window contents, so read-buffer alignment never
    changes a boundary.
    """

    def __init__(
        self,
        min_size: int = MIN_CHUNK_SIZE,
        avg_size: int = AVG_CHUNK_SIZE,
        max_size: int = MAX_CHUNK_SIZE,
        window_size: int = WINDOW_SIZE,
        read_size: int = READ_SIZE,
    ) -> None:
        """Initialize the chunker.

        Raises:
            ConfigError: If the size bounds are inconsistent.
        """
        if not 0 < min_size < avg_size < max_size:
            raise ConfigError(
                "Chunk sizes must satisfy 0 < min_size < avg_size < max_size "
                f"(got {min_size}, {avg_size}, {max_size})"
            )
        if not 0 < window_size <= min_size:
            raise ConfigError(
                f"window_size must be in (0, min_size], got {window_size}"
            )
        if read_size <= 0:
            raise ConfigError(f"read_size must be positive, got {read_size}")
        self.min_size = min_size
        self.avg_size = avg_size
        self.max_size = max_size
        self.window_size = window_size
        self.read_size = read_size
        self.mask = (1 << (avg_size.bit_length() - 1)) - 1

    def chunks(self, stream: BinaryIO) -> Iterator[ChunkSpan]:
        """Split a stream into content-defined chunks."""
        min_size = self.min_size
        max_size = self.max_size
        window = self.window_size
        mask = self.mask
        hasher = RollingHasher(window)
        roll = hasher.roll

        pending = bytearray()
        index = 0
        offset = 0

        for block in read_blocks(stream, self.read_size):
            pos = 0
            end = len(block)
            while pos < end:
                boundary = False
                if len(pending) < min_size:
                    take = min(min_size - len(pending), end - pos)
                    pending += block[pos:pos + take]
                    pos += take
                    if len(pending) < min_size:
                        continue
                    boundary = not hasher.prime(pending[min_size - window:]) & mask
                else:
                    while pos < end:
                        byte = block[pos]
                        pos += 1
                        old = pending[-window]
                        pending.append(byte)
                        if not roll(old, byte) & mask or len(pending) >= max_size:
                            boundary = True
                            break

                if boundary:
                    yield ChunkSpan(index=index, offset=offset, data=bytes(pending))
                    index += 1
                    offset += len(pending)
                    pending = bytearray()

        if pending:
            yield ChunkSpan(index=index, offset=offset, data=bytes(pending))


class FixedSizeChunker(Chunker):
    """Constant-length chunks; content is ignored."""

    def __init__(self, chunk_size: int = FIXED_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ConfigError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size

    def chunks(self, stream: BinaryIO) -> Iterator[ChunkSpan]:
        """Split a stream into ``chunk_size`` pieces (last one may be shorter)."""
        index = 0
        offset = 0
        while True:
            data = _read_exact(stream, self.chunk_size)
            if not data:
                return
            yield ChunkSpan(index=index, offset=offset, data=data)
            index += 1
            offset += len(data)


class FastCDCChunker(Chunker):
    """FastCDC chunking via the ``fastcdc`` library.

    Much faster than the pure-Python rolling hash, but the library works
    on an in-memory buffer, so the whole stream is read first.
    """

    def __init__(
        self,
        min_size: int = MIN_CHUNK_SIZE,
        avg_size: int = AVG_CHUNK_SIZE,
        max_size: int = MAX_CHUNK_SIZE,
    ) -> None:
        if not min_size < avg_size < max_size:
            raise ConfigError(
                "Chunk sizes must satisfy min_size < avg_size < max_size "
                f"(got {min_size}, {avg_size}, {max_size})"
            )
        if (
            min_size < FASTCDC_MIN_SIZE
            or avg_size < FASTCDC_MIN_AVG
            or max_size < FASTCDC_MIN_MAX
        ):
            raise ConfigError(
                f"fastcdc requires min_size >= {FASTCDC_MIN_SIZE}, "
                f"avg_size >= {FASTCDC_MIN_AVG}, max_size >= {FASTCDC_MIN_MAX}"
            )
        self.min_size = min_size
        self.avg_size = avg_size
        self.max_size = max_size

    def chunks(self, stream: BinaryIO) -> Iterator[ChunkSpan]:
        """Split a stream into FastCDC chunks."""
        data = stream.read()
        if not data:
            return

        cdc_chunks = fastcdc(
            data,
            min_size=self.min_size,
            avg_size=self.avg_size,
            max_size=self.max_size,
        )
        for index, cdc_chunk in enumerate(cdc_chunks):
            yield ChunkSpan(
                index=index,
                offset=cdc_chunk.offset,
                data=data[cdc_chunk.offset : cdc_chunk.offset + cdc_chunk.length],
            )


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, retrying short reads until EOF."""
    parts: list[bytes] = []
    remaining = size
    while remaining > 0:
        block = stream.read(remaining)
        if not block:
            break
        parts.append(block)
        remaining -= len(block)
    return b"".join(parts)


def create_chunker(config: DedupConfig) -> Chunker:
    """Factory function to create the chunker selected by a config.

    Raises:
        ConfigError: If the strategy is unknown or its sizes are invalid.
    """
    if config.strategy == ChunkStrategy.FIXED:
        return FixedSizeChunker(config.chunk_size)

    if config.strategy == ChunkStrategy.CONTENT_DEFINED:
        return ContentDefinedChunker(
            min_size=config.min_size,
            avg_size=config.avg_size,
            max_size=config.max_size,
            window_size=config.window_size,
            read_size=config.read_size,
        )

    if config.strategy == ChunkStrategy.FASTCDC:
        return FastCDCChunker(
            min_size=config.min_size,
            avg_size=config.avg_size,
            max_size=config.max_size,
        )

    raise ConfigError(f"Unknown chunking strategy: {config.strategy}")


def chunk_bytes(data: bytes, chunker: Chunker | None = None) -> Iterator[ChunkSpan]:
    """Split in-memory data into chunks (content-defined by default)."""
    chunker = chunker or ContentDefinedChunker()
    yield from chunker.chunks(io.BytesIO(data))


def chunk_file(path: Path, chunker: Chunker | None = None) -> Iterator[ChunkSpan]:
    """Split a file into chunks, streaming it from disk.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    chunker = chunker or ContentDefinedChunker()
    with open(path, "rb") as f:
        yield from chunker.chunks(f)
