"""Restore and verify commands for the dedupsync CLI.

Commands:
- restore: Reassemble a file from the chunk store
- verify: Check that every referenced chunk is stored
- ls: List files recorded in the manifest
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from dedupsync.cli.config import bytes_to_human, setup_logging
from dedupsync.core.config import MANIFEST_FILENAME, STORE_DIRNAME
from dedupsync.core.types import DedupError
from dedupsync.store.manifest import Manifest
from dedupsync.store.storage import LocalFSChunkStore


def _load_target(target: Path) -> tuple[Manifest, LocalFSChunkStore]:
    """Open the manifest and chunk store of a target root, or exit.

    Nothing is created under the target.
    """
    manifest_path = target / MANIFEST_FILENAME
    if not manifest_path.exists():
        click.echo(f"Error: no manifest at {manifest_path}", err=True)
        sys.exit(1)
    try:
        manifest = Manifest.load(manifest_path)
    except DedupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return manifest, LocalFSChunkStore(target / STORE_DIRNAME, create=False)


@click.command()
@click.argument("target", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("identity")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging.")
def restore(target: Path, identity: str, output: Path, verbose: bool) -> None:
    """Reassemble IDENTITY from TARGET into OUTPUT."""
    from dedupsync.engine.restore import reassemble

    setup_logging(verbose)
    manifest, store = _load_target(target)

    try:
        written = reassemble(manifest, store, identity, output)
    except DedupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Restored {identity} ({bytes_to_human(written)}) to {output}")


@click.command()
@click.argument("target", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--deep", is_flag=True, help="Re-hash every chunk's content.")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging.")
def verify(target: Path, deep: bool, verbose: bool) -> None:
    """Check that every chunk referenced under TARGET is present."""
    from dedupsync.engine.restore import verify_store

    setup_logging(verbose)
    manifest, store = _load_target(target)

    try:
        report = verify_store(manifest, store, deep=deep)
    except DedupError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for fingerprint in report.missing:
        click.echo(f"missing  {fingerprint}")
    for fingerprint in report.corrupt:
        click.echo(f"corrupt  {fingerprint}")

    if not report.ok:
        click.echo(
            f"FAILED: {len(report.missing)} missing, {len(report.corrupt)} corrupt "
            f"of {report.checked} chunks",
            err=True,
        )
        sys.exit(1)
    click.echo(f"OK: {report.checked} chunks verified")


@click.command(name="ls")
@click.argument("target", type=click.Path(exists=True, file_okay=False, path_type=Path))
def list_files(target: Path) -> None:
    """List files recorded in TARGET's manifest."""
    manifest, _ = _load_target(target)
    for entry in manifest:
        click.echo(f"{entry.identity}\t{len(entry.chunks)} chunks\t{bytes_to_human(entry.size)}")
