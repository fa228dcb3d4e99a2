"""End-to-end tests for run_sync()."""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import pytest

from dedupsync.core.config import DedupConfig
from dedupsync.core.types import IOFailure, ManifestCorruptError
from dedupsync.engine.gc import GarbageCollector
from dedupsync.engine.restore import reassemble, verify_store
from dedupsync.engine.sync import run_sync
from dedupsync.store.manifest import Manifest
from dedupsync.store.storage import LocalFSChunkStore

from tests.helpers import deny_listing, random_bytes


def _populate(source: Path) -> dict[str, bytes]:
    contents = {
        "full.vbk": random_bytes(40 * 1024, seed=1),
        "inc/day1.vib": random_bytes(12 * 1024, seed=2),
        "inc/day2.vib": random_bytes(12 * 1024, seed=3),
    }
    for name, data in contents.items():
        path = source / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return contents


class TestRunSync:
    """Tests for the full scan, chunk, persist and collect flow."""

    def test_first_run_and_restore(self, config: DedupConfig, tmp_path: Path) -> None:
        """Every source file can be rebuilt from the target."""
        contents = _populate(config.source_root)

        summary = run_sync(config)

        assert summary.files_processed == 3
        assert summary.gc is not None and summary.gc.deleted == 0
        manifest = Manifest.load(config.manifest_path)
        store = LocalFSChunkStore(config.store_path)
        assert manifest.identities() == sorted(contents)
        assert verify_store(manifest, store, deep=True).ok
        for identity, data in contents.items():
            output = tmp_path / "restore" / identity
            reassemble(manifest, store, identity, output)
            assert output.read_bytes() == data

    def test_deleted_source_is_collected(self, config: DedupConfig) -> None:
        """Removing a source drops its entry and its unique chunks."""
        _populate(config.source_root)
        run_sync(config)
        before = Manifest.load(config.manifest_path)
        doomed = set(before.get("inc/day1.vib").fingerprints)

        (config.source_root / "inc" / "day1.vib").unlink()
        summary = run_sync(config)

        after = Manifest.load(config.manifest_path)
        store = LocalFSChunkStore(config.store_path)
        assert summary.files_removed == 1
        assert "inc/day1.vib" not in after
        assert summary.gc.deleted == len(doomed - after.referenced_fingerprints())
        assert set(store.list()) == after.referenced_fingerprints()

    def test_second_run_writes_nothing(self, config: DedupConfig) -> None:
        """An unchanged tree is skipped on the next run."""
        _populate(config.source_root)
        run_sync(config)

        summary = run_sync(config)

        assert summary.files_unchanged == 3
        assert summary.chunks_written == 0
        assert summary.gc.deleted == 0

    def test_no_gc_keeps_orphans(self, config: DedupConfig) -> None:
        """Without collection, chunks of removed files stay in the store."""
        _populate(config.source_root)
        run_sync(config)
        blobs = set(LocalFSChunkStore(config.store_path).list())

        (config.source_root / "full.vbk").unlink()
        summary = run_sync(config, collect_garbage=False)

        assert summary.gc is None
        assert set(LocalFSChunkStore(config.store_path).list()) == blobs

    def test_ignore_patterns(self, config: DedupConfig) -> None:
        """Configured ignore patterns are honored."""
        _populate(config.source_root)
        config = replace(config, ignore_patterns=["inc/"])

        run_sync(config)

        assert Manifest.load(config.manifest_path).identities() == ["full.vbk"]

    def test_target_inside_source(self, config: DedupConfig) -> None:
        """A target nested in the source tree is not backed up."""
        _populate(config.source_root)
        config = replace(config, target_root=config.source_root / ".dedup")

        run_sync(config)

        identities = Manifest.load(config.manifest_path).identities()
        assert not any(identity.startswith(".dedup") for identity in identities)

    def test_corrupt_manifest_aborts(self, config: DedupConfig) -> None:
        """A corrupt manifest stops the run before any chunk is written."""
        _populate(config.source_root)
        config.manifest_path.write_text("{broken")

        with pytest.raises(ManifestCorruptError):
            run_sync(config)
        assert not config.store_path.exists()

    def test_fixed_strategy(self, config: DedupConfig) -> None:
        """The fixed strategy produces chunk_size pieces."""
        contents = _populate(config.source_root)
        config = replace(config, strategy="fixed", chunk_size=4096)

        run_sync(config)

        entry = Manifest.load(config.manifest_path).get("full.vbk")
        assert [ref.length for ref in entry.chunks] == [4096] * 10
        assert entry.size == len(contents["full.vbk"])


class TestRunSyncSafety:
    """Failures must never cost stored data."""

    def test_unreadable_directory_keeps_entries(
        self, config: DedupConfig, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """Files under a directory that cannot be listed keep their entry and chunks."""
        contents = _populate(config.source_root)
        run_sync(config)
        before = Manifest.load(config.manifest_path)
        blobs = set(LocalFSChunkStore(config.store_path).list())

        deny_listing(monkeypatch, "inc")
        summary = run_sync(config)

        after = Manifest.load(config.manifest_path)
        store = LocalFSChunkStore(config.store_path)
        assert summary.unreadable == ["inc"]
        assert summary.files_removed == 0
        assert summary.files_retained == 2
        assert summary.gc.deleted == 0
        assert after.get("inc/day1.vib") == before.get("inc/day1.vib")
        assert set(store.list()) == blobs
        assert any("Unreadable directory inc" in line for line in summary.lines())

        output = tmp_path / "day1.vib"
        reassemble(after, store, "inc/day1.vib", output)
        assert output.read_bytes() == contents["inc/day1.vib"]

    def test_unreadable_directory_still_drops_other_deletions(
        self, config: DedupConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Deletions outside the unreadable directory are still applied."""
        _populate(config.source_root)
        run_sync(config)

        (config.source_root / "full.vbk").unlink()
        deny_listing(monkeypatch, "inc")
        summary = run_sync(config)

        after = Manifest.load(config.manifest_path)
        assert summary.files_removed == 1
        assert after.identities() == ["inc/day1.vib", "inc/day2.vib"]

    def test_rewrite_with_preserved_mtime_is_rechunked(
        self, config: DedupConfig, tmp_path: Path
    ) -> None:
        """Same size and restored mtime do not hide new content."""
        path = config.source_root / "image.vbk"
        path.write_bytes(random_bytes(20_000, seed=1))
        run_sync(config)
        original = path.stat()

        # Rewrite the way rsync -t does: temp file, rename, restore mtime
        new_data = random_bytes(20_000, seed=2)
        tmp_file = config.source_root / ".image.vbk.part"
        tmp_file.write_bytes(new_data)
        os.replace(tmp_file, path)
        os.utime(path, ns=(original.st_atime_ns, original.st_mtime_ns))
        assert path.stat().st_mtime_ns == original.st_mtime_ns

        summary = run_sync(config)

        assert summary.files_unchanged == 0
        assert summary.files_processed == 1
        output = tmp_path / "restored.vbk"
        reassemble(
            Manifest.load(config.manifest_path),
            LocalFSChunkStore(config.store_path),
            "image.vbk",
            output,
        )
        assert output.read_bytes() == new_data

    def test_persist_failure_skips_gc(self, config: DedupConfig) -> None:
        """If the manifest cannot be saved, nothing is deleted from the store."""
        _populate(config.source_root)
        run_sync(config)
        saved = config.manifest_path.read_bytes()
        blobs = set(LocalFSChunkStore(config.store_path).list())

        # Without GC the chunks of the removed file would be deleted
        (config.source_root / "inc" / "day2.vib").unlink()
        with (
            patch.object(Manifest, "persist", side_effect=IOFailure("disk full")),
            patch.object(GarbageCollector, "collect") as collect,
            pytest.raises(IOFailure, match="disk full"),
        ):
            run_sync(config)

        collect.assert_not_called()
        assert set(LocalFSChunkStore(config.store_path).list()) == blobs
        assert config.manifest_path.read_bytes() == saved
