"""
Logging setup for applications built on roslink.

The library itself only attaches a NullHandler to the `roslink` logger;
call `configure_logging()` once at startup (the CLI does) to see its output.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure the `roslink` logger.

    - Adds a stderr handler so output does not mix with data printed on stdout.
    - Optionally appends to `log_file` as well.
    - Safe to call twice; earlier handlers are replaced.

    Returns the configured package logger.
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger("roslink")
    root.setLevel(level)
    # Avoid duplicate handlers if called twice
    root.handlers.clear()

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8", mode="a")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

    if not root.handlers:
        root.addHandler(logging.NullHandler())

    return root
