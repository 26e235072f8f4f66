"""
Logging configuration — set up once by the CLI before a command runs.

The installer narrates its progress at INFO as bare messages, the way
an operator watching a console install expects. DEBUG switches the
console to the diagnostic format and turns on the adapter trace (every
command, fetch and file edit), which is what ``--ci-run`` asks for.

Level precedence:
    --debug / --ci-run  >  --quiet  >  BLUEOS_LOG_LEVEL  >  INFO

An optional log file (BLUEOS_LOG_FILE) always gets the diagnostic
format, at BLUEOS_LOG_FILE_LEVEL or the console level.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_FMT_PROGRESS = "%(message)s"
_FMT_DIAGNOSTIC = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_CONSOLE = "%H:%M:%S"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def parse_level(level: str | None, default: int = logging.INFO) -> int:
    """Level name to its numeric value; unknown names give ``default``."""
    if not level:
        return default
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else default


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if level <= logging.DEBUG:
        handler.setFormatter(logging.Formatter(_FMT_DIAGNOSTIC, datefmt=_DATEFMT_CONSOLE))
    else:
        handler.setFormatter(logging.Formatter(_FMT_PROGRESS))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FMT_DIAGNOSTIC, datefmt=_DATEFMT_FILE))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers with the installer's.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ...).
        log_file: Optional log file path; parent directories are created.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = parse_level(level)
    handlers = [_console_handler(console_level)]
    root_level = console_level

    file_error: OSError | None = None
    if log_file:
        file_level = parse_level(log_file_level, default=console_level)
        try:
            handlers.append(_file_handler(log_file, file_level))
            root_level = min(root_level, file_level)
        except OSError as e:
            file_error = e

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(root_level)

    if file_error is not None:
        logging.getLogger(__name__).warning("Cannot open log file %s: %s", log_file, file_error)
