"""Shared pytest fixtures for dedupsync tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from dedupsync.core.chunking import ContentDefinedChunker
from dedupsync.core.config import DedupConfig
from dedupsync.core.types import ChunkStrategy
from dedupsync.store.manifest import Manifest
from dedupsync.store.storage import LocalFSChunkStore

from tests.helpers import AVG_SIZE, MAX_SIZE, MIN_SIZE, WINDOW


@pytest.fixture
def chunker() -> ContentDefinedChunker:
    """Content-defined chunker with small bounds."""
    return ContentDefinedChunker(
        min_size=MIN_SIZE,
        avg_size=AVG_SIZE,
        max_size=MAX_SIZE,
        window_size=WINDOW,
        read_size=8192,
    )


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Empty source directory."""
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def target_dir(tmp_path: Path) -> Path:
    """Empty target directory."""
    path = tmp_path / "target"
    path.mkdir()
    return path


@pytest.fixture
def store(target_dir: Path) -> LocalFSChunkStore:
    """Chunk store under the target directory."""
    return LocalFSChunkStore(target_dir / "chunks")


@pytest.fixture
def manifest(target_dir: Path) -> Manifest:
    """Empty manifest under the target directory."""
    return Manifest.load(target_dir / "manifest.json")


@pytest.fixture
def config(source_dir: Path, target_dir: Path) -> DedupConfig:
    """Content-defined config with small bounds and two workers."""
    return DedupConfig(
        source_root=source_dir,
        target_root=target_dir,
        strategy=ChunkStrategy.CONTENT_DEFINED,
        min_size=MIN_SIZE,
        avg_size=AVG_SIZE,
        max_size=MAX_SIZE,
        window_size=WINDOW,
        workers=2,
        read_size=8192,
    )
