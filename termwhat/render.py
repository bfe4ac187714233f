"""Terminal rendering of the JSON answers returned by the providers."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.text import Text

from .console import console as default_console

REQUIRED_LISTS = ("os_assumptions", "commands", "pitfalls", "verification_steps")


def parse_response(raw: str) -> Optional[Dict[str, Any]]:
    """Return the decoded answer, or ``None`` when it does not match the schema."""

    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get("title"), str):
        return None
    if not all(isinstance(payload.get(key), list) for key in REQUIRED_LISTS):
        return None
    if not all(isinstance(entry, dict) for entry in payload["commands"]):
        return None
    return payload


def primary_command(raw: str) -> Optional[str]:
    payload = parse_response(raw)
    if not payload or not payload["commands"]:
        return None
    command = payload["commands"][0].get("command")
    return command or None


def _risk_label(level: str) -> Text:
    level = (level or "low").lower()
    style = f"risk.{level}" if level in {"low", "medium", "high"} else "muted"
    return Text(f"[{level.upper()} RISK]", style=style)


def _render_parse_error(raw: str, console: Console) -> None:
    console.print(
        Panel(
            Group(Text("The response is not valid termwhat JSON. Raw response:", style="muted"), Text(raw)),
            title="Warning",
            style="warning",
        )
    )


def render_response(raw: str, *, brief: bool = False, console: Optional[Console] = None) -> None:
    """Print a structured answer; *brief* shows only the commands."""

    console = console or default_console
    payload = parse_response(raw)
    if payload is None:
        _render_parse_error(raw, console)
        return

    if brief:
        for entry in payload["commands"]:
            console.print(Syntax(str(entry.get("command", "")), "bash", word_wrap=True))
        return

    console.print()
    console.print(Text(payload["title"], style="bold cyan"))
    if payload["os_assumptions"]:
        console.print(Text("Assumptions:", style="muted"))
        for assumption in payload["os_assumptions"]:
            console.print(Text(f"  • {assumption}", style="muted"))
    console.print()
    console.print(Text("Commands:", style="bold"))
    for index, entry in enumerate(payload["commands"], start=1):
        heading = Text(f"{index}. {entry.get('label', '')} ")
        heading.append_text(_risk_label(str(entry.get("risk_level", "low"))))
        console.print(heading)
        console.print(Syntax(str(entry.get("command", "")), "bash", word_wrap=True))
        if entry.get("explanation"):
            console.print(Text(f"   {entry['explanation']}", style="muted"))
    if payload["pitfalls"]:
        console.print(Rule(style="muted"))
        console.print(Text("Pitfalls:", style="warning"))
        for pitfall in payload["pitfalls"]:
            console.print(f"  • {pitfall}")
    if payload["verification_steps"]:
        console.print(Text("Verify:", style="success"))
        for step in payload["verification_steps"]:
            console.print(f"  • {step}")
    console.print()
