from __future__ import annotations

import logging
import sys
from typing import Any, TextIO


LOG_LEVEL_CHOICES = ("debug", "info", "warning", "error")
DEFAULT_LOG_LEVEL = "warning"
LOG_FORMAT = "%(asctime)s {program}[%(process)d] %(levelname)s: %(message)s"

LOGGER = logging.getLogger("docketeer")
LOGGER.addHandler(logging.NullHandler())


def normalize_log_level(value: Any) -> str:
    normalized = str(value or "").strip().lower()
    if normalized in LOG_LEVEL_CHOICES:
        return normalized
    return DEFAULT_LOG_LEVEL


def configure_logging(level: str, *, program: str, stream: TextIO | None = None) -> None:
    """Send docketeer diagnostics to stderr, tagged with the program that wrote them.

    The driver and every launcher it spawns share one terminal, so each
    line carries the program name and pid. Calling this again replaces
    the previous handler.
    """
    # Browser tooling parses stdout, so diagnostics stay on stderr.
    target = stream if stream is not None else (sys.__stderr__ or sys.stderr)
    handler = logging.StreamHandler(target)
    handler.setFormatter(logging.Formatter(LOG_FORMAT.format(program=program)))
    for existing in list(LOGGER.handlers):
        LOGGER.removeHandler(existing)
    LOGGER.addHandler(handler)
    LOGGER.setLevel(normalize_log_level(level).upper())
    LOGGER.propagate = False
