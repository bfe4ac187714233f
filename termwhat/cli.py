"""Command-line entry point: one-shot questions, the REPL, setup and diagnostics."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from rich.markup import escape
from rich.panel import Panel

from .chat import ChatSession
from .clipboard import ClipboardError, copy_to_clipboard
from .config import (
    AppConfig,
    ConfigStore,
    EnvironmentOverrides,
    OllamaProviderConfig,
    load_dotenv_once,
    resolve_provider_name,
)
from .console import console
from .doctor import run_doctor
from .factory import create_provider
from .llm import ConversationMessage, ProviderClient, ProviderError, ProviderTimeoutError
from .logging import configure_logging, get_logger
from .prompt import SYSTEM_PROMPT
from .render import primary_command, render_response
from .setup_flow import run_setup

LOGGER = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="termwhat",
        description="Ask for terminal commands in plain language. Run 'termwhat setup' to configure providers.",
    )
    parser.add_argument("question", nargs="*", help="Question to answer; omit it to start the REPL.")
    parser.add_argument("--provider", help="Name of a configured provider to use for this run.")
    parser.add_argument("-H", "--host", help="Ollama host URL (Ollama provider only).")
    parser.add_argument("-m", "--model", help="Model to use for the selected provider.")
    parser.add_argument("-j", "--json", action="store_true", help="Print the raw JSON answer.")
    parser.add_argument(
        "-c", "--copy", action="store_true", help="Copy the first suggested command to the clipboard."
    )
    parser.add_argument("--doctor", action="store_true", help="Run connectivity diagnostics and exit.")
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Path to a .env file with secrets such as TERMWHAT_OPENAI_API_KEY (default: .env).",
    )
    parser.add_argument("--log-level", default="WARNING", help="Python logging level (default: WARNING).")
    return parser.parse_args(argv)


def build_provider(
    app_config: AppConfig,
    args: argparse.Namespace,
    env: EnvironmentOverrides,
) -> Tuple[str, ProviderClient]:
    name = resolve_provider_name(app_config, args.provider, env)
    config = app_config.provider_config(name)
    overrides = {"model": args.model}
    if args.host:
        if isinstance(config, OllamaProviderConfig):
            overrides["host_url"] = args.host
        else:
            LOGGER.warning("--host only applies to the ollama provider; ignoring it for '%s'.", name)
    return name, create_provider(config, env, overrides=overrides)


def answer_once(provider: ProviderClient, question: str, args: argparse.Namespace) -> int:
    messages: List[ConversationMessage] = [
        ConversationMessage("system", SYSTEM_PROMPT),
        ConversationMessage("user", question),
    ]
    chunks: List[str] = []
    with console.status("[info]Thinking...[/info]"):
        answer = provider.chat(messages, on_chunk=chunks.append)

    if args.json:
        console.print(answer, markup=False, highlight=False, soft_wrap=True)
    else:
        render_response(answer)

    if args.copy:
        command = primary_command(answer)
        if command is None:
            console.print("[warning]No command to copy.[/warning]")
        else:
            try:
                copy_to_clipboard(command)
            except ClipboardError as exc:
                console.print(f"[warning]{escape(str(exc))}[/warning]")
            else:
                console.print("[success]✓ Command copied to clipboard[/success]")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    load_dotenv_once(args.env_file)

    store = ConfigStore()
    if args.question == ["setup"]:
        run_setup(store)
        return 0

    app_config = store.load()
    env = EnvironmentOverrides.capture()
    try:
        name, provider = build_provider(app_config, args, env)
    except ProviderError as exc:
        console.print(Panel(escape(str(exc)), title="Configuration Error", style="error"))
        console.print("Run 'termwhat setup' to configure providers.")
        return 1

    if args.doctor:
        return 0 if run_doctor(provider) else 1

    if not args.question:
        ChatSession(provider, app_config, store, provider_name=name, env=env).run_cli()
        return 0

    try:
        return answer_once(provider, " ".join(args.question), args)
    except ProviderTimeoutError as exc:
        console.print(
            Panel(f"{escape(str(exc))}\nTry a longer timeout or a smaller model.", title="Timeout", style="error")
        )
        return 1
    except ProviderError as exc:
        console.print(
            Panel(
                f"Encountered a {provider.get_provider_kind()} error: {escape(str(exc))}",
                title="Provider Error",
                style="error",
            )
        )
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
