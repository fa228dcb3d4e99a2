"""Configuration for dedupsync runs.

This module defines the run configuration consumed by the chunking core
and helpers to load/save it as a JSON file.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dedupsync.core.types import ChunkStrategy, ConfigError

# Chunk size configuration (in bytes)
MIN_CHUNK_SIZE = 1 * 1024 * 1024   # 1 MB
AVG_CHUNK_SIZE = 4 * 1024 * 1024   # 4 MB
MAX_CHUNK_SIZE = 8 * 1024 * 1024   # 8 MB
FIXED_CHUNK_SIZE = 4 * 1024 * 1024  # 4 MB

WINDOW_SIZE = 48
READ_SIZE = 1024 * 1024

MANIFEST_FILENAME = "manifest.json"
STORE_DIRNAME = "chunks"


def default_workers() -> int:
    """Return the default hash worker count (available CPUs)."""
    return max(os.cpu_count() or 4, 2)


@dataclass
class DedupConfig:
    """Configuration of a deduplication run.

    Attributes:
        source_root: Directory holding the files to chunk.
        target_root: Directory receiving the chunk store and manifest.
        strategy: Chunk boundary strategy.
        min_size: Minimum chunk size (content-defined modes).
        avg_size: Target average chunk size (content-defined modes).
        max_size: Maximum chunk size (content-defined modes).
        chunk_size: Chunk size for the fixed strategy.
        window_size: Rolling hash window in bytes.
        workers: Number of hash worker threads.
        read_size: Read buffer size for streaming sources.
        skip_unchanged: Skip files whose size, mtime, ctime and inode match the
            manifest.
        ignore_patterns: Extra glob patterns excluded from the scan.
    """

    source_root: Path
    target_root: Path
    strategy: ChunkStrategy = ChunkStrategy.CONTENT_DEFINED
    min_size: int = MIN_CHUNK_SIZE
    avg_size: int = AVG_CHUNK_SIZE
    max_size: int = MAX_CHUNK_SIZE
    chunk_size: int = FIXED_CHUNK_SIZE
    window_size: int = WINDOW_SIZE
    workers: int = field(default_factory=default_workers)
    read_size: int = READ_SIZE
    skip_unchanged: bool = True
    ignore_patterns: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Normalize paths and validate size bounds."""
        self.source_root = Path(self.source_root).expanduser()
        self.target_root = Path(self.target_root).expanduser()
        try:
            self.strategy = ChunkStrategy(self.strategy)
        except ValueError as e:
            raise ConfigError(f"Unknown chunking strategy: {self.strategy}") from e
        self.validate()

    def validate(self) -> None:
        """Check size bounds and worker count.

        Raises:
            ConfigError: If a value is out of range.
        """
        for name in ("min_size", "avg_size", "max_size", "chunk_size",
                     "window_size", "workers", "read_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

        if self.strategy == ChunkStrategy.FIXED:
            return

        if not self.min_size < self.avg_size < self.max_size:
            raise ConfigError(
                "Chunk sizes must satisfy min_size < avg_size < max_size "
                f"(got {self.min_size}, {self.avg_size}, {self.max_size})"
            )
        if self.window_size > self.min_size:
            raise ConfigError(
                f"window_size ({self.window_size}) must not exceed "
                f"min_size ({self.min_size})"
            )

    @property
    def store_path(self) -> Path:
        """Directory of the content-addressed chunk store."""
        return self.target_root / STORE_DIRNAME

    @property
    def manifest_path(self) -> Path:
        """Path of the persisted manifest."""
        return self.target_root / MANIFEST_FILENAME

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        data = asdict(self)
        data["source_root"] = str(self.source_root)
        data["target_root"] = str(self.target_root)
        data["strategy"] = self.strategy.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], **overrides: Any) -> DedupConfig:
        """Build a config from a dict, ignoring unknown keys.

        Args:
            data: Values loaded from a config file.
            **overrides: Values taking precedence over ``data`` (None is ignored).

        Raises:
            ConfigError: If required values are missing or invalid.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values.update({k: v for k, v in overrides.items() if v is not None})
        missing = [name for name in ("source_root", "target_root") if not values.get(name)]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
        return cls(**values)


def load_config(path: Path) -> dict[str, Any]:
    """Load configuration values from a JSON file.

    Returns:
        The stored values, or an empty dict if the file does not exist.

    Raises:
        ConfigError: If the file is not a JSON object.
    """
    path = Path(path)
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file {path}: expected a JSON object")
    return data


def save_config(config: DedupConfig, path: Path) -> None:
    """Save configuration to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
