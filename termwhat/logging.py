"""Logging setup for the termwhat CLI.

Log records share the Rich console with the REPL, so warnings about skipped
config entries, legacy config migration or unwritable shell profiles appear
between answers instead of corrupting them. The HTTP and SDK libraries used by
the providers are kept at WARNING so ``--log-level DEBUG`` shows termwhat's own
records rather than every request line.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.logging import RichHandler

from .console import console

LOGGER_NAME = "termwhat"

NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "openai", "anthropic", "ollama")


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(level: str = "WARNING") -> int:
    """Route log records through the shared console and return the level applied.

    Unknown level names fall back to WARNING. Record text is printed without
    markup parsing since it often carries raw model output or file paths.
    """

    resolved = _level(level)
    logging.basicConfig(
        level=resolved,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=False, markup=False, show_path=False)],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    return resolved


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or LOGGER_NAME)
