"""Rich console shared by the CLI, the REPL and the setup flow."""

from __future__ import annotations

import os

from rich.console import Console
from rich.theme import Theme

_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "green",
        "prompt": "bold green",
        "muted": "dim",
        "risk.low": "green",
        "risk.medium": "yellow",
        "risk.high": "bold red",
    }
)

console = Console(theme=_THEME, no_color="NO_COLOR" in os.environ)

__all__ = ["console"]
