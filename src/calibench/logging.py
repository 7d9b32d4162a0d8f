"""Logging setup for calibench.

Sample lines are written to stdout so they can be redirected into a file
and fed to ``calibench compare``.  Everything else (progress, convergence
warnings, skipped input lines) goes through the ``calibench`` logger, whose
console handler writes to stderr.  An optional file handler always logs at
DEBUG level.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOGGER_NAME = "calibench"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the root calibench logger.

    Args:
        verbose: Console level DEBUG (per-attempt calibration details).
        quiet: Console level WARNING. Ignored if *verbose* is True.
        log_file: If provided, also log everything at DEBUG to this path.

    Returns:
        The configured ``calibench`` logger.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Reconfiguring (e.g. repeated CliRunner invocations) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    if verbose:
        console.setLevel(logging.DEBUG)
    elif quiet:
        console.setLevel(logging.WARNING)
    else:
        console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger, e.g. ``get_logger("calibrate")`` → ``calibench.calibrate``."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")
