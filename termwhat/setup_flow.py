"""Interactive first-run setup.

The dialogue is a list of :class:`SetupStep` objects answered in order by an
``ask`` callable, so tests can replay a scripted conversation. API keys are
never written to the config file; they go to the user's shell profile and the
current process environment.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, MutableMapping, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from .config import (
    CREDENTIAL_ENV_VARS,
    DEFAULT_TIMEOUT_MS,
    AppConfig,
    ConfigStore,
    OllamaProviderConfig,
    OpenAIProviderConfig,
    OpenRouterProviderConfig,
    ProviderConfig,
    default_ollama_host,
    provider_config_type,
)
from .console import console as default_console
from .logging import get_logger

LOGGER = get_logger(__name__)

Ask = Callable[[str, str], str]
AskSecret = Callable[[str], str]


@dataclass(frozen=True)
class CloudBackend:
    kind: str
    label: str
    key_url: str


CLOUD_BACKENDS = (
    CloudBackend("openai", "OpenAI", "https://platform.openai.com/api-keys"),
    CloudBackend("anthropic", "Anthropic", "https://console.anthropic.com/settings/keys"),
    CloudBackend("openrouter", "OpenRouter", "https://openrouter.ai/keys"),
)


def _yes(answer: str) -> bool:
    return answer.strip().lower() in {"y", "yes"}


def _timeout(answer: str) -> int:
    value = int(answer)
    if value <= 0:
        raise ValueError("timeout must be positive")
    return value


def _optional(answer: str) -> Optional[str]:
    return answer.strip() or None


@dataclass
class SetupStep:
    """One question of the dialogue: ``parse`` turns the raw answer into a value."""

    key: str
    question: str
    default: str = ""
    parse: Callable[[str], Any] = str


def run_steps(steps: Sequence[SetupStep], ask: Ask) -> Dict[str, Any]:
    """Ask every step in order; blank or unparsable answers fall back to the default."""

    answers: Dict[str, Any] = {}
    for step in steps:
        raw = (ask(step.question, step.default) or "").strip() or step.default
        try:
            answers[step.key] = step.parse(raw)
        except ValueError:
            LOGGER.warning("Invalid answer %r for '%s'; using %r.", raw, step.question, step.default)
            answers[step.key] = step.parse(step.default)
    return answers


def detect_shell_profile(environ: Optional[MutableMapping[str, str]] = None) -> Path:
    environ = os.environ if environ is None else environ
    shell = environ.get("SHELL", "")
    home = Path.home()
    if "zsh" in shell:
        return home / ".zshrc"
    if "fish" in shell:
        return home / ".config" / "fish" / "config.fish"
    return home / ".bashrc"


def export_line(variable: str, value: str, profile: Path) -> str:
    if profile.name == "config.fish":
        return f"set -gx {variable} {shlex.quote(value)}"
    return f"export {variable}={shlex.quote(value)}"


class SetupFlow:
    """Guided configuration of one or more providers."""

    def __init__(
        self,
        store: ConfigStore,
        *,
        ask: Optional[Ask] = None,
        ask_secret: Optional[AskSecret] = None,
        environ: Optional[MutableMapping[str, str]] = None,
        shell_profile: Optional[Path] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.store = store
        self.console = console or default_console
        self.ask = ask or (lambda question, default: Prompt.ask(question, default=default, console=self.console))
        self.ask_secret = ask_secret or (
            lambda question: Prompt.ask(question, password=True, console=self.console)
        )
        self.environ = os.environ if environ is None else environ
        self.shell_profile = shell_profile or detect_shell_profile(self.environ)

    # ------------------------------------------------------------------
    # Dialogue
    # ------------------------------------------------------------------
    def run(self) -> AppConfig:
        config = self.store.load()
        self.console.rule("termwhat setup")

        selection = run_steps(
            [SetupStep("ollama", "Configure ollama?", "y", _yes)]
            + [SetupStep(backend.kind, f"Configure {backend.kind}?", "n", _yes) for backend in CLOUD_BACKENDS],
            self.ask,
        )

        if selection["ollama"]:
            config.providers["ollama"] = self._configure_ollama(config.providers.get("ollama"))
            self.console.print("[success]✓ Ollama configured[/success]")

        for backend in CLOUD_BACKENDS:
            if not selection[backend.kind]:
                continue
            if not self._setup_api_key(backend):
                continue
            config.providers[backend.kind] = self._configure_cloud(backend.kind, config.providers.get(backend.kind))
            self.console.print(f"[success]✓ {backend.label} configured[/success]")

        if config.current_provider_name not in config.providers and config.providers:
            config.current_provider_name = next(iter(config.providers))
        self.store.save(config)
        self.console.print(f"[success]Configuration saved to {self.store.path}[/success]")

        names = list(config.providers)
        if len(names) > 1:
            self.console.print(f"Available providers: {', '.join(names)}")
            choice = run_steps(
                [SetupStep("default", "Default provider", config.current_provider_name)], self.ask
            )["default"]
            if choice in config.providers and choice != config.current_provider_name:
                config.current_provider_name = choice
                self.store.save(config)

        self.console.print(f"[success]✓ Default provider set to: {config.current_provider_name}[/success]")
        self.console.print("Run 'termwhat --doctor' to test connectivity.")
        return config

    def _configure_ollama(self, existing: Optional[ProviderConfig]) -> OllamaProviderConfig:
        current = existing if isinstance(existing, OllamaProviderConfig) else OllamaProviderConfig(
            host_url=default_ollama_host(self.environ)
        )
        answers = run_steps(
            [
                SetupStep("host_url", "Ollama host URL", current.host_url),
                SetupStep("model", "Default model", current.model),
                SetupStep("timeout_ms", "Request timeout in ms", str(current.timeout_ms), _timeout),
            ],
            self.ask,
        )
        return OllamaProviderConfig(**answers)

    def _configure_cloud(self, kind: str, existing: Optional[ProviderConfig]) -> ProviderConfig:
        config_type = provider_config_type(kind)
        current = existing if isinstance(existing, config_type) else config_type(timeout_ms=DEFAULT_TIMEOUT_MS)
        steps: List[SetupStep] = [SetupStep("model", "Default model", current.model)]
        if isinstance(current, OpenAIProviderConfig):
            steps.append(SetupStep("base_url", "API base URL (optional)", current.base_url or "", _optional))
            steps.append(
                SetupStep("organization_id", "Organization ID (optional)", current.organization_id or "", _optional)
            )
        if isinstance(current, OpenRouterProviderConfig):
            steps.append(SetupStep("site_url", "Site URL for attribution (optional)", current.site_url or "", _optional))
            steps.append(SetupStep("app_name", "App name for attribution (optional)", current.app_name or "", _optional))
        answers = run_steps(steps, self.ask)
        for key, value in answers.items():
            setattr(current, key, value)
        return current

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------
    def _setup_api_key(self, backend: CloudBackend) -> bool:
        variable = CREDENTIAL_ENV_VARS[backend.kind]
        if (self.environ.get(variable) or "").strip():
            self.console.print(f"[info]Using {variable} from the environment.[/info]")
            return True

        manual = export_line(variable, "your-api-key-here", self.shell_profile)
        self.console.print(
            Panel(
                f"{backend.label} requires an API key from: {backend.key_url}\n\n"
                "The key is stored as an environment variable, never in the config file.\n"
                f"Add this line to {self.shell_profile}:\n  {manual}",
                title=f"Configuring: {backend.kind}",
                style="info",
            )
        )
        offer = run_steps(
            [SetupStep("add", "Would you like me to add it for you? [y/n]", "n", _yes)], self.ask
        )
        if not offer["add"]:
            self.console.print(f"Skipping {backend.kind}. Set it up later with:\n  {manual}")
            return False

        api_key = (self.ask_secret(f"Paste your {backend.label} API key") or "").strip()
        if not api_key:
            self.console.print(f"[warning]No API key provided. Skipping {backend.kind} setup.[/warning]")
            return False

        line = export_line(variable, api_key, self.shell_profile)
        try:
            self.shell_profile.parent.mkdir(parents=True, exist_ok=True)
            with self.shell_profile.open("a", encoding="utf-8") as handle:
                handle.write(f"\n# termwhat - {backend.label} API key\n{line}\n")
        except OSError as exc:
            LOGGER.error("Failed to write to %s: %s", self.shell_profile, exc)
            self.console.print(f"Please add this line to {self.shell_profile} manually:\n  {line}")
        else:
            self.console.print(f"[success]✓ Added to {self.shell_profile}[/success]")

        self.environ[variable] = api_key
        self.console.print("[success]✓ Loaded into the current session[/success]")
        return True


def run_setup(
    store: Optional[ConfigStore] = None,
    *,
    skip_if_exists: bool = False,
    **options: Any,
) -> AppConfig:
    """Run the setup dialogue, or just load the config when it already exists."""

    store = store or ConfigStore()
    if skip_if_exists and store.exists():
        return store.load()
    return SetupFlow(store, **options).run()
