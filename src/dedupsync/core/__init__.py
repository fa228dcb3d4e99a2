"""Core module - Rolling hash, chunking, fingerprints and configuration."""

from dedupsync.core.chunking import (
    Chunker,
    ChunkSpan,
    ContentDefinedChunker,
    FastCDCChunker,
    FixedSizeChunker,
    chunk_bytes,
    chunk_file,
    create_chunker,
)
from dedupsync.core.config import (
    AVG_CHUNK_SIZE,
    MAX_CHUNK_SIZE,
    MIN_CHUNK_SIZE,
    DedupConfig,
    load_config,
    save_config,
)
from dedupsync.core.hashing import ChunkHasher, get_chunk_hash, is_fingerprint
from dedupsync.core.rolling import RollingHasher
from dedupsync.core.types import (
    ChunkNotFoundError,
    ChunkStatus,
    ChunkStrategy,
    ConfigError,
    DedupError,
    EmptyInputError,
    IOFailure,
    ManifestCorruptError,
    UnpersistedManifestError,
)

__all__ = [
    # Chunking
    "AVG_CHUNK_SIZE",
    "ChunkSpan",
    "Chunker",
    "ContentDefinedChunker",
    "FastCDCChunker",
    "FixedSizeChunker",
    "MAX_CHUNK_SIZE",
    "MIN_CHUNK_SIZE",
    "RollingHasher",
    "chunk_bytes",
    "chunk_file",
    "create_chunker",
    # Hashing
    "ChunkHasher",
    "get_chunk_hash",
    "is_fingerprint",
    # Config
    "DedupConfig",
    "load_config",
    "save_config",
    # Types
    "ChunkNotFoundError",
    "ChunkStatus",
    "ChunkStrategy",
    "ConfigError",
    "DedupError",
    "EmptyInputError",
    "IOFailure",
    "ManifestCorruptError",
    "UnpersistedManifestError",
]
