"""Interactive chat session with runtime provider switching."""

from __future__ import annotations

import enum
from typing import Callable, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import AppConfig, ConfigStore, EnvironmentOverrides, OllamaProviderConfig, ProviderConfig
from .console import console
from .doctor import run_doctor
from .factory import create_provider
from .llm import (
    ConversationMessage,
    ProviderClient,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderTimeoutError,
)
from .logging import get_logger
from .prompt import SYSTEM_PROMPT
from .render import render_response

LOGGER = get_logger(__name__)

MAX_TURNS = 10
MAX_HISTORY = 1 + 2 * MAX_TURNS

ProviderBuilder = Callable[[ProviderConfig, Optional[EnvironmentOverrides]], ProviderClient]


class SessionState(enum.Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


HELP_TEXT = """\
/help                   Show this help message
/exit, /quit            Leave the REPL
/term <question>        Brief mode: print only the commands
/provider [name]        Show or switch provider
/provider list          List configured providers
/model [name]           Show or set the model
/models                 List models offered by the current provider
/host [url]             Show or set the Ollama host (Ollama only)
/history                Show conversation history
/clear                  Clear conversation context
/doctor                 Run connectivity diagnostics

Any other input is sent as a question."""


class ChatSession:
    def __init__(
        self,
        provider: ProviderClient,
        app_config: AppConfig,
        store: ConfigStore,
        *,
        provider_name: Optional[str] = None,
        env: Optional[EnvironmentOverrides] = None,
        system_prompt: str = SYSTEM_PROMPT,
        provider_builder: Optional[ProviderBuilder] = None,
        console_override: Optional[Console] = None,
    ) -> None:
        self.provider = provider
        self.app_config = app_config
        self.store = store
        self.current_provider_name = provider_name or app_config.current_provider_name
        self.env = env
        self.console = console_override or console
        self.history: List[ConversationMessage] = [ConversationMessage("system", system_prompt)]
        self.state = SessionState.IDLE
        self.running = True
        self._build_provider = provider_builder or create_provider
        self._commands: Dict[str, Callable[[List[str]], None]] = {
            "help": self._cmd_help,
            "exit": self._cmd_exit,
            "quit": self._cmd_exit,
            "term": self._cmd_term,
            "provider": self._cmd_provider,
            "model": self._cmd_model,
            "models": self._cmd_models,
            "host": self._cmd_host,
            "history": self._cmd_history,
            "clear": self._cmd_clear,
            "doctor": self._cmd_doctor,
        }

    @property
    def prompt(self) -> str:
        return f"[{self.provider.get_provider_kind()}:{self.provider.get_model_name()}]> "

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------
    def trim_history(self) -> None:
        """Drop the oldest turns until the history fits; the system prompt stays."""

        while len(self.history) > MAX_HISTORY:
            end = 2
            while end < len(self.history) and self.history[end].role != "user":
                end += 1
            del self.history[1:end]

    def ask(self, question: str, *, brief: bool = False) -> Optional[str]:
        """Send *question* with the full history and render the answer.

        A failed call leaves the user message in history; it keeps its slot in
        the trimming window.
        """

        self.history.append(ConversationMessage("user", question))
        self.trim_history()
        chunks: List[str] = []
        self.state = SessionState.AWAITING_RESPONSE
        try:
            with self.console.status("[info]Thinking...[/info]"):
                answer = self.provider.chat(self.history, on_chunk=chunks.append)
        except ProviderTimeoutError as exc:
            self.console.print(
                Panel(
                    f"{escape(str(exc))}\nTry a longer timeout or a smaller model.",
                    title="Timeout",
                    style="error",
                )
            )
            return None
        except ProviderError as exc:
            self.console.print(
                Panel(
                    f"Encountered a {self.provider.get_provider_kind()} error: {escape(str(exc))}",
                    title="Provider Error",
                    style="error",
                )
            )
            return None
        finally:
            self.state = SessionState.IDLE

        self.history.append(ConversationMessage("assistant", answer))
        self.trim_history()
        render_response(answer, brief=brief, console=self.console)
        return answer

    def process_line(self, line: str) -> bool:
        """Handle one line of input. Returns ``False`` once the session should end."""

        text = line.strip()
        if not text:
            return self.running
        if text.startswith("/"):
            self.handle_command(text)
        else:
            self.ask(text)
        return self.running

    def handle_command(self, line: str) -> None:
        parts = line[1:].split()
        name = parts[0].lower() if parts else ""
        handler = self._commands.get(name)
        if handler is None:
            self.console.print(f"Unknown command: /{escape(name)}\nType /help for available commands.")
            return
        handler(parts[1:])

    # ------------------------------------------------------------------
    # Provider and config mutations
    # ------------------------------------------------------------------
    def _persist(self) -> bool:
        try:
            self.store.save(self.app_config)
        except OSError as exc:
            self.console.print(
                Panel(
                    f"Could not save configuration to {self.store.path}: {escape(str(exc))}\n"
                    "This session keeps the new settings but the config file is out of date.",
                    title="Warning",
                    style="warning",
                )
            )
            return False
        return True

    def switch_provider(self, name: str) -> ProviderClient:
        """Build the named provider, make it current and persist the selection.

        If construction fails nothing changes. The history is kept as is.
        """

        config = self.app_config.providers.get(name)
        if config is None:
            raise ProviderNotConfiguredError(f'Provider "{name}" not found in configuration')
        provider = self._build_provider(config, self.env)
        self.provider = provider
        self.current_provider_name = name
        self.app_config.current_provider_name = name
        self._persist()
        return provider

    def set_model(self, model: str) -> None:
        self.provider.update_config(model=model)
        entry = self.app_config.providers.get(self.current_provider_name)
        if entry is not None:
            entry.model = model
            self._persist()

    def set_host(self, host: str) -> None:
        self.provider.update_config(host_url=host)
        entry = self.app_config.providers.get(self.current_provider_name)
        if isinstance(entry, OllamaProviderConfig):
            entry.host_url = host
            self._persist()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def _cmd_help(self, args: List[str]) -> None:
        self.console.print(Panel(escape(HELP_TEXT), title="Commands", style="info"))

    def _cmd_exit(self, args: List[str]) -> None:
        self.running = False

    def _cmd_term(self, args: List[str]) -> None:
        if not args:
            self.console.print("Usage: /term <question>\nExample: /term how to list running processes")
            return
        self.ask(" ".join(args), brief=True)

    def _list_providers(self) -> None:
        table = Table(title="Configured Providers", show_header=True, header_style="bold cyan")
        table.add_column("Name", style="magenta")
        table.add_column("Type")
        table.add_column("Model")
        table.add_column("")
        for name, config in self.app_config.providers.items():
            marker = "(current)" if name == self.current_provider_name else ""
            table.add_row(name, config.kind, config.model, marker)
        self.console.print(table)

    def _cmd_provider(self, args: List[str]) -> None:
        if not args or args[0] == "list":
            if not args:
                self.console.print(f"Current provider: {escape(self.current_provider_name)}")
            self._list_providers()
            return

        name = args[0]
        try:
            provider = self.switch_provider(name)
        except ProviderNotConfiguredError:
            self.console.print(
                f'[error]Provider "{escape(name)}" not found.[/error] Run "/provider list" to see available providers.'
            )
            return
        except ProviderError as exc:
            self.console.print(f"[error]Error switching provider:[/error] {escape(str(exc))}")
            return
        self.console.print(
            f"Provider set to: {escape(name)} ({provider.get_provider_kind()}, model: {escape(provider.get_model_name())})"
        )

    def _cmd_model(self, args: List[str]) -> None:
        if not args:
            self.console.print(f"Current model: {escape(self.provider.get_model_name())}")
            return
        self.set_model(args[0])
        self.console.print(f"Model set to: {escape(args[0])}")

    def _cmd_models(self, args: List[str]) -> None:
        try:
            with self.console.status("[info]Fetching available models...[/info]"):
                models = self.provider.list_models()
        except ProviderError as exc:
            self.console.print(f"[error]Error listing models:[/error] {escape(str(exc))}")
            return
        current = self.provider.get_model_name()
        table = Table(title=f"{self.provider.get_provider_kind().title()} Models", box=None)
        table.add_column("#", style="cyan", justify="right")
        table.add_column("Name", style="magenta")
        table.add_column("")
        for index, model in enumerate(models, start=1):
            table.add_row(str(index), model, "(current)" if model == current else "")
        self.console.print(table)

    def _cmd_host(self, args: List[str]) -> None:
        if self.provider.get_provider_kind() != "ollama":
            self.console.print("The /host command is only available for the Ollama provider.")
            return
        if not args:
            self.console.print(f"Current host: {escape(self.provider.get_config().host_url)}")
            return
        self.set_host(args[0])
        self.console.print(f"Host set to: {escape(args[0])}")

    def _cmd_history(self, args: List[str]) -> None:
        table = Table(title="Conversation history", show_header=True, header_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Role")
        table.add_column("Content")
        for index, message in enumerate(self.history):
            if message.role == "system":
                preview = "<system prompt>"
            else:
                preview = message.content[:100] + ("..." if len(message.content) > 100 else "")
            table.add_row(str(index), message.role.upper(), escape(preview))
        self.console.print(table)

    def _cmd_clear(self, args: List[str]) -> None:
        del self.history[1:]
        self.console.print("Conversation history cleared.")

    def _cmd_doctor(self, args: List[str]) -> None:
        run_doctor(self.provider, console=self.console)

    # ------------------------------------------------------------------
    # Read loop
    # ------------------------------------------------------------------
    def run_cli(self) -> None:
        self.console.rule("termwhat REPL. Type /help for commands, /exit to quit.")
        while self.running:
            try:
                line = self.console.input(f"[prompt]{escape(self.prompt)}[/prompt]")
            except EOFError:
                self.console.print()
                break
            except KeyboardInterrupt:
                self.console.print("\n(Use /exit or press Ctrl+D to quit)")
                continue
            self.process_line(line)
        self.console.print("Goodbye!")
