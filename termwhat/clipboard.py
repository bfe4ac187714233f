"""Copy text to the system clipboard with the platform's native tool."""

from __future__ import annotations

import shutil
import subprocess
import sys
from typing import List


class ClipboardError(RuntimeError):
    """Raised when no clipboard tool is available or it fails."""


def _clipboard_command() -> List[str]:
    if sys.platform == "darwin":
        return ["pbcopy"]
    if sys.platform == "win32":
        return ["clip"]
    if shutil.which("xclip"):
        return ["xclip", "-selection", "clipboard"]
    if shutil.which("xsel"):
        return ["xsel", "--clipboard", "--input"]
    if shutil.which("wl-copy"):
        return ["wl-copy"]
    raise ClipboardError("No clipboard utility found. Install xclip, xsel or wl-clipboard.")


def copy_to_clipboard(text: str) -> None:
    command = _clipboard_command()
    try:
        subprocess.run(command, input=text, text=True, check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise ClipboardError(f"Failed to copy to clipboard: {exc}") from exc
