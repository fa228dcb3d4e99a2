"""Configuration utilities for the dedupsync CLI.

This module provides shared helpers used across CLI commands: logging
setup, human-readable sizes, and a click parameter type for them.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_SIZE_UNITS = {
    "TB": 1024**4, "T": 1024**4,
    "GB": 1024**3, "G": 1024**3,
    "MB": 1024**2, "M": 1024**2,
    "KB": 1024, "K": 1024,
    "B": 1,
}


def setup_logging(verbose: bool = False, log_path: Path | None = None) -> None:
    """Configure logging to output to stderr and optionally a file.

    Args:
        verbose: Log DEBUG messages instead of INFO.
        log_path: Optional path of a log file.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("dedupsync")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    root_logger.handlers.clear()

    # Stderr keeps stdout free for the run summary
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def human_to_bytes(size_str: str) -> int:
    """Convert a human-readable size ('4M', '512KB', '1000') to bytes.

    Raises:
        ValueError: For negative values or invalid formats.
    """
    text = size_str.strip().upper()
    for unit in sorted(_SIZE_UNITS, key=len, reverse=True):
        if text.endswith(unit):
            number = text[: -len(unit)].strip()
            try:
                value = float(number)
            except ValueError:
                raise ValueError(f"Invalid numeric value in size: '{number}'") from None
            break
    else:
        unit = "B"
        try:
            value = float(text)
        except ValueError:
            raise ValueError(
                f"Invalid size format: '{size_str}'. Supported formats: 4M, 512KB, 1000"
            ) from None

    if value < 0:
        raise ValueError(f"Negative size not allowed: '{size_str}'")
    return int(value * _SIZE_UNITS[unit])


def bytes_to_human(size: int) -> str:
    """Convert bytes to a short human-readable string (e.g. '3.20MB')."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.2f}{unit}"
        value /= 1024
    return f"{value:.2f}TB"


class SizeParamType(click.ParamType):
    """Click parameter accepting human-readable byte sizes."""

    name = "size"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> int:
        if isinstance(value, int):
            return value
        try:
            return human_to_bytes(str(value))
        except ValueError as e:
            self.fail(str(e), param, ctx)


SIZE = SizeParamType()
