"""Tests for chunk boundary detection."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from dedupsync.core.chunking import (
    ContentDefinedChunker,
    FastCDCChunker,
    FixedSizeChunker,
    chunk_bytes,
    chunk_file,
    create_chunker,
)
from dedupsync.core.config import DedupConfig
from dedupsync.core.types import ChunkStrategy, ConfigError

from tests.helpers import AVG_SIZE, MAX_SIZE, MIN_SIZE, WINDOW, random_bytes


def _lengths(chunker, data: bytes) -> list[int]:
    return [chunk.length for chunk in chunk_bytes(data, chunker)]


class TestRoundTrip:
    """Concatenated chunks reproduce the input exactly."""

    @pytest.mark.parametrize(
        "size",
        [0, 1, MIN_SIZE - 1, MIN_SIZE, AVG_SIZE, MAX_SIZE, MAX_SIZE + 1, 7 * MAX_SIZE + 13],
    )
    def test_round_trip(self, chunker: ContentDefinedChunker, size: int) -> None:
        """Chunks are contiguous, non-empty and cover the input."""
        data = random_bytes(size, seed=size)
        chunks = list(chunk_bytes(data, chunker))

        assert b"".join(chunk.data for chunk in chunks) == data
        offset = 0
        for i, chunk in enumerate(chunks):
            assert chunk.index == i
            assert chunk.offset == offset
            assert chunk.length > 0
            offset = chunk.end
        assert offset == size

    def test_empty_input_yields_nothing(self, chunker: ContentDefinedChunker) -> None:
        """An empty stream produces no chunks."""
        assert list(chunk_bytes(b"", chunker)) == []

    def test_short_input_is_one_chunk(self, chunker: ContentDefinedChunker) -> None:
        """Input shorter than min_size becomes a single chunk."""
        data = b"small data"
        chunks = list(chunk_bytes(data, chunker))
        assert len(chunks) == 1
        assert chunks[0].data == data

    def test_constant_input_is_cut_at_max(self, chunker: ContentDefinedChunker) -> None:
        """Without boundaries in the content, chunks are forced at max_size."""
        data = b"\xab" * (3 * MAX_SIZE + 100)
        lengths = _lengths(chunker, data)
        if lengths[0] == MAX_SIZE:
            assert lengths == [MAX_SIZE, MAX_SIZE, MAX_SIZE, 100]
        else:
            # The all-same window happened to match the mask
            assert len(set(lengths[:-1])) == 1


class TestBounds:
    """Chunk sizes respect min and max."""

    def test_sizes_within_bounds(self, chunker: ContentDefinedChunker) -> None:
        """Every chunk but the last is in [min_size, max_size]."""
        lengths = _lengths(chunker, random_bytes(200 * 1024, seed=7))
        assert len(lengths) > 1
        for length in lengths[:-1]:
            assert MIN_SIZE <= length <= MAX_SIZE
        assert 0 < lengths[-1] <= MAX_SIZE

    def test_average_is_reasonable(self, chunker: ContentDefinedChunker) -> None:
        """Random data yields chunks near the target average."""
        lengths = _lengths(chunker, random_bytes(400 * 1024, seed=8))
        mean = sum(lengths) / len(lengths)
        assert MIN_SIZE < mean < MAX_SIZE

    def test_mask_uses_floor_log2(self) -> None:
        """A non power of two average uses the floor of its log2."""
        chunker = ContentDefinedChunker(MIN_SIZE, 1500, MAX_SIZE, WINDOW)
        assert chunker.mask == 1023


class TestDeterminism:
    """Boundaries depend only on content."""

    @pytest.mark.parametrize("read_size", [1, 7, 4096, 1024 * 1024])
    def test_independent_of_read_size(self, read_size: int) -> None:
        """Any read buffer size yields identical boundaries."""
        data = random_bytes(40 * 1024, seed=11)
        reference = ContentDefinedChunker(MIN_SIZE, AVG_SIZE, MAX_SIZE, WINDOW, read_size=65536)
        chunker = ContentDefinedChunker(MIN_SIZE, AVG_SIZE, MAX_SIZE, WINDOW, read_size=read_size)

        expected = list(reference.spans(io.BytesIO(data)))
        assert list(chunker.spans(io.BytesIO(data))) == expected

    def test_repeat_runs_match(self, chunker: ContentDefinedChunker) -> None:
        """Chunking the same bytes twice gives the same chunks."""
        data = random_bytes(64 * 1024, seed=12)
        assert _lengths(chunker, data) == _lengths(chunker, data)

    def test_insert_only_moves_nearby_boundaries(self, chunker: ContentDefinedChunker) -> None:
        """Inserting bytes in the middle keeps the chunks far from the edit."""
        data = random_bytes(128 * 1024, seed=13)
        edited = data[:64 * 1024] + b"inserted" + data[64 * 1024:]

        before = [chunk.data for chunk in chunk_bytes(data, chunker)]
        after = [chunk.data for chunk in chunk_bytes(edited, chunker)]

        # Chunks wholly before the edit survive, and the tail resynchronizes
        assert before[0] == after[0]
        assert before[-2:] == after[-2:]
        assert len(set(before) & set(after)) >= len(before) - 5


class TestLargeStream:
    """A 10 MiB stream with 1K/4K/16K bounds."""

    MIN = 1024
    AVG = 4096
    MAX = 16 * 1024

    def test_ten_mib_and_append(self) -> None:
        """Bounds hold, and appending one byte only changes the last chunk."""
        chunker = ContentDefinedChunker(self.MIN, self.AVG, self.MAX, window_size=48)
        data = random_bytes(10 * 1024 * 1024, seed=42)

        chunks = list(chunk_bytes(data, chunker))
        assert b"".join(chunk.data for chunk in chunks) == data
        for chunk in chunks[:-1]:
            assert self.MIN <= chunk.length <= self.MAX

        appended = list(chunk_bytes(data + b"\x00", chunker))
        old = [chunk.data for chunk in chunks]
        new = [chunk.data for chunk in appended]
        assert new[: len(old) - 1] == old[:-1]
        assert b"".join(new[len(old) - 1:]) == old[-1] + b"\x00"


class TestValidation:
    """Invalid bounds are rejected."""

    @pytest.mark.parametrize(
        "bounds",
        [(0, 10, 20), (10, 10, 20), (10, 20, 20), (30, 20, 40)],
    )
    def test_invalid_bounds(self, bounds: tuple[int, int, int]) -> None:
        """min < avg < max is required."""
        with pytest.raises(ConfigError):
            ContentDefinedChunker(*bounds, window_size=1)

    def test_window_larger_than_min(self) -> None:
        """window_size may not exceed min_size."""
        with pytest.raises(ConfigError, match="window_size"):
            ContentDefinedChunker(16, 64, 128, window_size=32)

    def test_fixed_chunk_size_positive(self) -> None:
        """The fixed chunker needs a positive size."""
        with pytest.raises(ConfigError):
            FixedSizeChunker(0)

    def test_fastcdc_minimums(self) -> None:
        """fastcdc sizes below the library minimums are rejected."""
        with pytest.raises(ConfigError, match="fastcdc"):
            FastCDCChunker(32, 128, 512)


class TestOtherStrategies:
    """Fixed-size and FastCDC chunkers honor the same contract."""

    def test_fixed_size(self) -> None:
        """Fixed chunks are all chunk_size except the last."""
        data = random_bytes(10_000, seed=20)
        chunks = list(chunk_bytes(data, FixedSizeChunker(4096)))
        assert [chunk.length for chunk in chunks] == [4096, 4096, 1808]
        assert [chunk.offset for chunk in chunks] == [0, 4096, 8192]
        assert b"".join(chunk.data for chunk in chunks) == data

    def test_fixed_size_empty(self) -> None:
        """Empty input produces no fixed chunks."""
        assert list(chunk_bytes(b"", FixedSizeChunker(4096))) == []

    def test_fastcdc_round_trip(self) -> None:
        """FastCDC chunks cover the input contiguously."""
        data = random_bytes(256 * 1024, seed=21)
        chunks = list(chunk_bytes(data, FastCDCChunker(2048, 8192, 32768)))
        assert b"".join(chunk.data for chunk in chunks) == data
        for i, chunk in enumerate(chunks):
            assert chunk.index == i
            assert chunk.length <= 32768

    def test_create_chunker_per_strategy(self, tmp_path: Path) -> None:
        """create_chunker() honors the configured strategy."""
        base = dict(
            source_root=tmp_path, target_root=tmp_path / "t",
            min_size=1024, avg_size=4096, max_size=16384, window_size=48,
        )
        assert isinstance(
            create_chunker(DedupConfig(**base, strategy=ChunkStrategy.FIXED)), FixedSizeChunker
        )
        assert isinstance(
            create_chunker(DedupConfig(**base, strategy="content-defined")), ContentDefinedChunker
        )
        assert isinstance(create_chunker(DedupConfig(**base, strategy="fastcdc")), FastCDCChunker)


class TestChunkFile:
    """Chunking files from disk."""

    def test_chunk_file(self, tmp_path: Path, chunker: ContentDefinedChunker) -> None:
        """chunk_file() matches chunk_bytes() for the same content."""
        data = random_bytes(30 * 1024, seed=30)
        path = tmp_path / "data.bin"
        path.write_bytes(data)

        from_file = [chunk.data for chunk in chunk_file(path, chunker)]
        from_bytes = [chunk.data for chunk in chunk_bytes(data, chunker)]
        assert from_file == from_bytes

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing path raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            list(chunk_file(tmp_path / "nope.bin"))
