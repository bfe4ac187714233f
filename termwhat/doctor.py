"""Connectivity diagnostics for the active provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import CREDENTIAL_ENV_VARS, ENV_OLLAMA_HOST
from .console import console as default_console
from .llm import ProviderClient

SLOW_RESPONSE_MS = 2000


@dataclass
class CheckResult:
    check: str
    passed: bool
    message: str


def _checks(provider: ProviderClient, console: Console) -> tuple:
    kind = provider.get_provider_kind()
    model = provider.get_model_name()
    with console.status(f"[info]Checking {kind} reachability...[/info]"):
        health = provider.health_check()

    results: List[CheckResult] = [
        CheckResult(
            f"{kind} reachable",
            health.healthy,
            "Connected" if health.healthy else f"Failed to connect: {health.error}",
        )
    ]
    if not health.healthy:
        for check in ("API responding", "Model available", "Response time acceptable"):
            results.append(CheckResult(check, False, "Cannot test - backend unreachable"))
        return health, results

    elapsed = health.response_time_ms or 0
    models = health.models or []
    results.append(CheckResult("API responding", True, f"Response time: {elapsed}ms"))
    results.append(
        CheckResult(
            "Model available",
            model in models,
            f"Model '{model}' is available" if model in models else f"Model '{model}' not found",
        )
    )
    results.append(
        CheckResult(
            "Response time acceptable",
            elapsed < SLOW_RESPONSE_MS,
            "Response time under 2s" if elapsed < SLOW_RESPONSE_MS else f"Response time high ({elapsed}ms)",
        )
    )
    return health, results


def _tips(provider: ProviderClient, health, results: List[CheckResult]) -> List[str]:
    kind = provider.get_provider_kind()
    config = provider.get_config()
    tips: List[str] = []
    if not health.healthy:
        if kind == "ollama":
            tips.append(f"Ollama not found at {config.host_url}")
            tips.append("  Is Ollama running? Start it with: ollama serve")
            tips.append("  To expose Ollama on your LAN: OLLAMA_HOST=0.0.0.0 ollama serve")
            tips.append(f"  Or set {ENV_OLLAMA_HOST} to the correct URL")
        else:
            variable = CREDENTIAL_ENV_VARS.get(kind, "the API key variable")
            tips.append(f"Could not reach the {kind} API")
            tips.append(f"  Check that {variable} holds a valid key and that you are online")
    model_check = next(result for result in results if result.check == "Model available")
    if health.healthy and not model_check.passed:
        tips.append(f"Model '{config.model}' is not available")
        if kind == "ollama":
            tips.append(f"  Install it with: ollama pull {config.model}")
        if health.models:
            tips.append("  Available models: " + ", ".join(health.models))
    slow_check = results[-1]
    if health.healthy and not slow_check.passed:
        tips.append("Response time is high")
        tips.append("  Consider a smaller or faster model, or check your network connection")
    return tips


def run_doctor(provider: ProviderClient, console: Optional[Console] = None) -> bool:
    """Probe *provider* and print a report. Returns ``True`` when every check passes."""

    console = console or default_console
    health, results = _checks(provider, console)

    table = Table(title="Diagnostics", show_header=True, header_style="bold cyan")
    table.add_column("", justify="center")
    table.add_column("Check")
    table.add_column("Result")
    for result in results:
        icon = "[success]✓[/success]" if result.passed else "[error]✗[/error]"
        table.add_row(icon, result.check, result.message)
    console.print(table)

    tips = _tips(provider, health, results)
    if tips:
        console.print(Panel("\n".join(tips), title="Troubleshooting", style="warning"))
    else:
        console.print("[success]All checks passed! Ready to use termwhat.[/success]")

    config = provider.get_config()
    summary = [f"Provider: {provider.get_provider_kind()}", f"Model:    {config.model}"]
    if getattr(config, "host_url", None):
        summary.append(f"Host:     {config.host_url}")
    summary.append(f"Timeout:  {config.timeout_ms}ms")
    console.print(Panel("\n".join(summary), title="Current configuration", style="info"))
    return all(result.passed for result in results)
