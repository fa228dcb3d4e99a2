"""Command-line interface for dedupsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- run: Deduplicate a source tree into a target root
- gc: Delete orphan chunks
- restore: Reassemble a file from its chunks
- verify: Check chunk presence/integrity
- ls: List files in the manifest
"""

from __future__ import annotations

import click

from dedupsync.cli.config import (
    SIZE,
    bytes_to_human,
    human_to_bytes,
    setup_logging,
)
from dedupsync.cli.restore import list_files, restore, verify
from dedupsync.cli.run import gc, run


@click.group()
@click.version_option(package_name="dedupsync")
def cli() -> None:
    """dedupsync - content-defined chunk deduplication for backup images."""


# Chunking commands
cli.add_command(run)
cli.add_command(gc)

# Manifest consumers
cli.add_command(restore)
cli.add_command(verify)
cli.add_command(list_files)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "SIZE",
    "bytes_to_human",
    "cli",
    "human_to_bytes",
    "main",
    "setup_logging",
]
