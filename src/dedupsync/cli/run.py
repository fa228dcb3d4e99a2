"""Run and gc commands for the dedupsync CLI.

Commands:
- run: Chunk a source tree into a target root, persist, then collect garbage
- gc: Collect garbage against the persisted manifest
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from dedupsync.cli.config import SIZE, bytes_to_human, setup_logging
from dedupsync.core.config import DedupConfig, load_config, save_config
from dedupsync.core.types import ChunkStrategy, DedupError


@click.command()
@click.argument("source", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.argument("target", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
    help="JSON config file; command-line options take precedence.",
)
@click.option(
    "--strategy", type=click.Choice([s.value for s in ChunkStrategy]),
    help="Chunk boundary strategy.",
)
@click.option("--min-size", type=SIZE, help="Minimum chunk size (e.g. 256K).")
@click.option("--avg-size", type=SIZE, help="Average chunk size (e.g. 1M).")
@click.option("--max-size", type=SIZE, help="Maximum chunk size (e.g. 4M).")
@click.option("--chunk-size", type=SIZE, help="Chunk size for the fixed strategy.")
@click.option("--workers", "-j", type=click.IntRange(min=1), help="Hash worker threads.")
@click.option("--timeout", type=click.FloatRange(min=0), help="Stop between files after N seconds.")
@click.option(
    "--no-skip-unchanged", is_flag=True,
    help="Rechunk files even if their stat matches the manifest.",
)
@click.option("--no-gc", is_flag=True, help="Do not delete orphan chunks after the run.")
@click.option(
    "--write-config", type=click.Path(dir_okay=False, path_type=Path),
    help="Save the effective configuration to this file.",
)
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Also log to a file.")
@click.option("--verbose", "-v", is_flag=True, help="Log every chunk decision.")
def run(
    source: Path | None,
    target: Path | None,
    config_path: Path | None,
    strategy: str | None,
    min_size: int | None,
    avg_size: int | None,
    max_size: int | None,
    chunk_size: int | None,
    workers: int | None,
    timeout: float | None,
    no_skip_unchanged: bool,
    no_gc: bool,
    write_config: Path | None,
    log_file: Path | None,
    verbose: bool,
) -> None:
    """Deduplicate SOURCE into a chunk store and manifest under TARGET."""
    from dedupsync.engine.sync import run_sync

    setup_logging(verbose, log_file)

    try:
        values = load_config(config_path) if config_path else {}
        config = DedupConfig.from_dict(
            values,
            source_root=source,
            target_root=target,
            strategy=strategy,
            min_size=min_size,
            avg_size=avg_size,
            max_size=max_size,
            chunk_size=chunk_size,
            workers=workers,
            skip_unchanged=False if no_skip_unchanged else None,
        )
    except DedupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not config.source_root.is_dir():
        click.echo(f"Error: source directory not found: {config.source_root}", err=True)
        sys.exit(1)

    if write_config:
        save_config(config, write_config)

    try:
        summary = run_sync(config, timeout=timeout, collect_garbage=not no_gc)
    except DedupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for line in summary.lines():
        click.echo(line)
    click.echo(f"Stored: {bytes_to_human(summary.bytes_written)} new data")


@click.command()
@click.argument("target", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--verbose", "-v", is_flag=True, help="Log every deleted chunk.")
def gc(target: Path, verbose: bool) -> None:
    """Delete chunks under TARGET not referenced by its manifest."""
    from dedupsync.core.config import MANIFEST_FILENAME, STORE_DIRNAME
    from dedupsync.engine.gc import GarbageCollector
    from dedupsync.store.manifest import Manifest
    from dedupsync.store.storage import LocalFSChunkStore

    setup_logging(verbose)

    manifest_path = target / MANIFEST_FILENAME
    if not manifest_path.exists():
        click.echo(f"Error: no manifest at {manifest_path}", err=True)
        sys.exit(1)

    try:
        manifest = Manifest.load(manifest_path)
        store = LocalFSChunkStore(target / STORE_DIRNAME, create=False)
        result = GarbageCollector(store).collect(manifest)
    except DedupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Scanned {result.scanned} chunks, deleted {result.deleted}, kept {result.kept}")
