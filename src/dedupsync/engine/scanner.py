"""Source file discovery.

This module provides:
- IgnorePatterns: gitignore-style pattern matching on relative paths
- SourceScan: files found under a source root, plus unreadable directories
- scan_source: walk a source tree into a SourceScan
"""

from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Files that are never backup payload
DEFAULT_IGNORE_PATTERNS = [
    ".DS_Store",
    "Thumbs.db",
    "*.tmp",
    "*.temp",
    "~*",
    "*.lck",
]


class IgnorePatterns:
    """Handles ignore pattern matching for file paths."""

    def __init__(self, patterns: list[str] | None = None) -> None:
        """Initialize with patterns.

        Args:
            patterns: Extra glob patterns, added to the defaults.
        """
        self._patterns = list(DEFAULT_IGNORE_PATTERNS)
        if patterns:
            self._patterns.extend(patterns)

    @property
    def patterns(self) -> list[str]:
        """Return the active patterns."""
        return list(self._patterns)

    def add_pattern(self, pattern: str) -> None:
        """Add an ignore pattern."""
        self._patterns.append(pattern)

    def should_ignore(self, rel_path: str) -> bool:
        """Check if a relative POSIX path should be ignored.

        A pattern matches the full relative path, the file name, or (for
        patterns ending with ``/``) any leading directory.
        """
        name = rel_path.rsplit("/", 1)[-1]
        parts = rel_path.split("/")[:-1]
        for pattern in self._patterns:
            if pattern.endswith("/"):
                if any(fnmatch.fnmatch(part, pattern[:-1]) for part in parts):
                    return True
            elif fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern):
                return True
        return False


@dataclass
class SourceScan:
    """Result of scanning a source tree.

    Attributes:
        files: Identity -> absolute path, sorted by identity.
        unreadable: Relative POSIX paths of directories that could not be
            listed (``""`` for the root itself).
    """

    files: dict[str, Path] = field(default_factory=dict)
    unreadable: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True if every directory was listed."""
        return not self.unreadable

    def covers(self, identity: str) -> bool:
        """Check whether the scan can vouch for the absence of ``identity``.

        Files under an unreadable directory may still exist even though the
        scan did not return them.
        """
        for directory in self.unreadable:
            if not directory or identity.startswith(f"{directory}/"):
                return False
        return True


def scan_source(
    root: Path,
    ignore: IgnorePatterns | None = None,
    exclude: list[Path] | None = None,
) -> SourceScan:
    """Find regular files under a source root.

    Symlinks are skipped. Identities are paths relative to ``root`` with
    ``/`` separators. Directories that cannot be listed are recorded in
    ``SourceScan.unreadable`` instead of failing the scan.

    Args:
        root: Source directory.
        ignore: Ignore patterns (defaults only if None).
        exclude: Directories to leave out entirely (e.g. a nested target).

    Returns:
        The files found and the directories that could not be read.

    Raises:
        NotADirectoryError: If root is not a directory.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Source root is not a directory: {root}")

    ignore = ignore or IgnorePatterns()
    excluded = {Path(p).resolve() for p in exclude or []}
    files: dict[str, Path] = {}
    unreadable: list[str] = []

    def on_error(error: OSError) -> None:
        logger.warning(f"Cannot scan {error.filename}: {error.strerror}")
        unreadable.append(_relative_dir(root, error.filename))

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        current = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames
            if current / d not in excluded and not (current / d).is_symlink()
        )
        for filename in filenames:
            path = current / filename
            if path.is_symlink() or not path.is_file():
                continue
            identity = path.relative_to(root).as_posix()
            if ignore.should_ignore(identity):
                logger.debug(f"Ignored {identity}")
                continue
            files[identity] = path

    logger.info(f"Found {len(files)} files under {root}")
    return SourceScan(files=dict(sorted(files.items())), unreadable=sorted(set(unreadable)))


def _relative_dir(root: Path, filename: str | bytes | None) -> str:
    """Map a failed directory to its relative POSIX path ('' if unknown)."""
    if filename is None:
        return ""
    try:
        relative = Path(os.fsdecode(filename)).resolve().relative_to(root)
    except ValueError:
        return ""
    return "" if relative == Path(".") else relative.as_posix()
