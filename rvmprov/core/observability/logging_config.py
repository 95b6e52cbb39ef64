"""
Logging setup for rvmprov.

``rvmprov.main`` calls ``setup_logging`` once per invocation; every
module logs through ``logging.getLogger(__name__)`` and inherits it.

The console level comes from the first of:
    --debug / --verbose / --quiet  >  RVMPROV_LOG_LEVEL  >  WARNING

RVMPROV_LOG_FILE adds a file handler, at RVMPROV_LOG_FILE_LEVEL or the
console level. ``apply`` provisions users on worker threads named
``provision_N``, so every format past WARNING carries the thread name.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

ENV_LOG_LEVEL = "RVMPROV_LOG_LEVEL"
ENV_LOG_FILE = "RVMPROV_LOG_FILE"
ENV_LOG_FILE_LEVEL = "RVMPROV_LOG_FILE_LEVEL"

# Plain step lines for the operator
_CONSOLE_QUIET = ("%(message)s", None)
# -v: which thread (user) and which module said it
_CONSOLE_VERBOSE = ("%(asctime)s %(threadName)s [%(name)s] %(message)s", "%H:%M:%S")
# --debug: down to the source line
_CONSOLE_DEBUG = (
    "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d — %(message)s",
    "%H:%M:%S",
)
_FILE = (
    "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d — %(message)s",
    "%Y-%m-%d %H:%M:%S",
)


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Console level name from CLI flags, falling back to the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(ENV_LOG_LEVEL) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler and, optionally, a file handler.

    Replaces whatever handlers the root logger had, so calling it again
    (as CliRunner-driven tests do) never duplicates output.
    """
    console_level = _parse_level(level)
    if console_level <= logging.DEBUG:
        fmt, datefmt = _CONSOLE_DEBUG
    elif console_level <= logging.INFO:
        fmt, datefmt = _CONSOLE_VERBOSE
    else:
        fmt, datefmt = _CONSOLE_QUIET

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(*_FILE))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Numeric level for a name; unknown or empty names mean WARNING."""
    numeric = logging.getLevelName(level.upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
