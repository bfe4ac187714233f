"""Configuration models, environment overrides and the persisted config store."""

from __future__ import annotations

import copy
import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Dict, Mapping, Optional, Type

from dotenv import load_dotenv

from .llm import ProviderNotConfiguredError, UnknownProviderKindError
from .logging import get_logger

LOGGER = get_logger(__name__)

ENV_PROVIDER = "TERMWHAT_PROVIDER"
ENV_MODEL = "TERMWHAT_MODEL"
ENV_OLLAMA_HOST = "TERMWHAT_OLLAMA_HOST"
ENV_CONFIG_FILE = "TERMWHAT_CONFIG_FILE"
ENV_ENV_FILE = "TERMWHAT_ENV_FILE"

CREDENTIAL_ENV_VARS: Dict[str, str] = {
    "openai": "TERMWHAT_OPENAI_API_KEY",
    "anthropic": "TERMWHAT_ANTHROPIC_API_KEY",
    "openrouter": "TERMWHAT_OPENROUTER_API_KEY",
}

DEFAULT_PROVIDER_NAME = "ollama"
DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DOCKER_OLLAMA_HOST = "http://ollama:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_TIMEOUT_MS = 60000
OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

LEGACY_KEYS = ("hostUrl", "ollamaHost", "model", "timeoutMs", "timeout")

# Persisted (camelCase) names of the snake_case dataclass fields.
_JSON_KEYS = {
    "timeout_ms": "timeoutMs",
    "host_url": "hostUrl",
    "base_url": "baseUrl",
    "organization_id": "organizationId",
    "site_url": "siteUrl",
    "app_name": "appName",
}
# Field names written by older releases.
_ALIASES = {
    "host": "host_url",
    "ollamaHost": "host_url",
    "timeout": "timeout_ms",
    "organization": "organization_id",
}
_INT_FIELDS = {"timeout_ms"}

_DOTENV_LOADED = False


def load_dotenv_once(env_file: Optional[Path] = None) -> None:
    """Load a ``.env`` file once without overriding variables already set."""

    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return

    env_path = Path(env_file or os.getenv(ENV_ENV_FILE, ".env")).expanduser()
    if env_path.exists():
        load_dotenv(env_path, override=False)
    _DOTENV_LOADED = True


def _env(key: str, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    source = os.environ if environ is None else environ
    value = source.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def default_ollama_host(environ: Optional[Mapping[str, str]] = None) -> str:
    if (_env("DOCKER", environ) or "").lower() == "true":
        return DOCKER_OLLAMA_HOST
    return DEFAULT_OLLAMA_HOST


def default_config_path() -> Path:
    return Path.home() / ".termwhatrc"


# ----------------------------------------------------------------------
# Provider configs
# ----------------------------------------------------------------------
@dataclass
class ProviderConfig:
    """Settings shared by every backend; ``kind`` is fixed per subclass."""

    kind: ClassVar[str] = ""

    model: str = ""
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    def to_mapping(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind}
        for item in dataclasses.fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            payload[_JSON_KEYS.get(item.name, item.name)] = value
        return payload

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ProviderConfig":
        known = {item.name for item in dataclasses.fields(cls)}
        reverse = {json_key: name for name, json_key in _JSON_KEYS.items()}
        values: Dict[str, Any] = {}
        for key, value in payload.items():
            name = reverse.get(key) or _ALIASES.get(key) or key
            if name not in known or value is None:
                continue
            values[name] = int(value) if name in _INT_FIELDS else value
        return cls(**values)


@dataclass
class OllamaProviderConfig(ProviderConfig):
    """Connection details for a local Ollama daemon."""

    kind: ClassVar[str] = "ollama"

    model: str = DEFAULT_OLLAMA_MODEL
    host_url: str = DEFAULT_OLLAMA_HOST


@dataclass
class OpenAIProviderConfig(ProviderConfig):
    """Settings for the OpenAI Chat Completions API."""

    kind: ClassVar[str] = "openai"

    model: str = "gpt-4"
    base_url: Optional[str] = None
    organization_id: Optional[str] = None


@dataclass
class AnthropicProviderConfig(ProviderConfig):
    kind: ClassVar[str] = "anthropic"

    model: str = "claude-3-5-sonnet-20241022"


@dataclass
class OpenRouterProviderConfig(ProviderConfig):
    """OpenRouter speaks the OpenAI protocol; the optional fields become attribution headers."""

    kind: ClassVar[str] = "openrouter"

    model: str = "anthropic/claude-3.5-sonnet"
    site_url: Optional[str] = None
    app_name: Optional[str] = None


_PROVIDER_CONFIG_TYPES: Dict[str, Type[ProviderConfig]] = {
    config_type.kind: config_type
    for config_type in (
        OllamaProviderConfig,
        OpenAIProviderConfig,
        AnthropicProviderConfig,
        OpenRouterProviderConfig,
    )
}


def register_provider_config(config_type: Type[ProviderConfig]) -> None:
    """Register the config dataclass used to parse entries of ``config_type.kind``."""

    _PROVIDER_CONFIG_TYPES[config_type.kind.lower()] = config_type


def provider_config_type(kind: str) -> Type[ProviderConfig]:
    try:
        return _PROVIDER_CONFIG_TYPES[kind.lower()]
    except KeyError:
        raise UnknownProviderKindError(f"Unknown provider type: {kind}") from None


def provider_config_from_mapping(payload: Mapping[str, Any]) -> ProviderConfig:
    kind = str(payload.get("kind") or payload.get("provider") or "")
    return provider_config_type(kind).from_mapping(payload)


# ----------------------------------------------------------------------
# Application config
# ----------------------------------------------------------------------
@dataclass
class AppConfig:
    """Named provider entries plus the name of the one currently selected."""

    current_provider_name: str = DEFAULT_PROVIDER_NAME
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)

    @classmethod
    def default(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        return cls(
            current_provider_name=DEFAULT_PROVIDER_NAME,
            providers={
                DEFAULT_PROVIDER_NAME: OllamaProviderConfig(host_url=default_ollama_host(environ)),
            },
        )

    def provider_config(self, name: Optional[str] = None) -> ProviderConfig:
        """Return the entry for *name* (default: the current provider)."""

        target = name or self.current_provider_name
        config = self.providers.get(target)
        if config is None:
            raise ProviderNotConfiguredError(f'Provider "{target}" not found in configuration')
        return config

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "currentProviderName": self.current_provider_name,
            "providers": {name: config.to_mapping() for name, config in self.providers.items()},
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "AppConfig":
        current = payload.get("currentProviderName") or payload.get("currentProvider")
        entries = payload.get("providers") or {}
        if not isinstance(current, str) or not isinstance(entries, dict):
            raise ValueError("Configuration is missing 'currentProviderName' or 'providers'.")
        providers: Dict[str, ProviderConfig] = {}
        for name, entry in entries.items():
            if not isinstance(entry, dict):
                raise ValueError(f"Provider entry '{name}' must be an object.")
            try:
                providers[name] = provider_config_from_mapping(entry)
            except UnknownProviderKindError as exc:
                LOGGER.warning("Ignoring provider '%s': %s", name, exc)
        return cls(current_provider_name=current, providers=providers)


def is_legacy_config(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and not payload.get("currentProviderName")
        and not payload.get("currentProvider")
        and any(key in payload for key in LEGACY_KEYS)
    )


def migrate_legacy_config(
    payload: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None
) -> AppConfig:
    """Turn a single-backend legacy document into a one-entry :class:`AppConfig`."""

    host = payload.get("hostUrl") or payload.get("ollamaHost") or default_ollama_host(environ)
    model = payload.get("model") or DEFAULT_OLLAMA_MODEL
    timeout = payload.get("timeoutMs") or payload.get("timeout") or DEFAULT_TIMEOUT_MS
    return AppConfig(
        current_provider_name=DEFAULT_PROVIDER_NAME,
        providers={
            DEFAULT_PROVIDER_NAME: OllamaProviderConfig(
                model=str(model), timeout_ms=int(timeout), host_url=str(host)
            ),
        },
    )


# ----------------------------------------------------------------------
# Environment overrides
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class EnvironmentOverrides:
    """Process environment captured once and handed to the factory and CLI."""

    provider: Optional[str] = None
    model: Optional[str] = None
    ollama_host: Optional[str] = None
    api_keys: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def capture(cls, environ: Optional[Mapping[str, str]] = None) -> "EnvironmentOverrides":
        keys = {}
        for kind, variable in CREDENTIAL_ENV_VARS.items():
            value = _env(variable, environ)
            if value:
                keys[kind] = value
        return cls(
            provider=_env(ENV_PROVIDER, environ),
            model=_env(ENV_MODEL, environ),
            ollama_host=_env(ENV_OLLAMA_HOST, environ),
            api_keys=keys,
        )

    def api_key_for(self, kind: str) -> Optional[str]:
        return self.api_keys.get(kind)

    def apply(self, config: ProviderConfig) -> ProviderConfig:
        """Return a copy of *config* with environment values laid over it."""

        enriched = copy.deepcopy(config)
        if self.model:
            enriched.model = self.model
        if self.ollama_host and isinstance(enriched, OllamaProviderConfig):
            enriched.host_url = self.ollama_host
        return enriched


def resolve_provider_name(
    app_config: AppConfig,
    provider_name: Optional[str] = None,
    env: Optional[EnvironmentOverrides] = None,
) -> str:
    """Pick the provider name: explicit flag, then environment, then persisted value."""

    env = env or EnvironmentOverrides.capture()
    return provider_name or env.provider or app_config.current_provider_name


# ----------------------------------------------------------------------
# Persistence
# ----------------------------------------------------------------------
class ConfigStore:
    """Single reader/writer of the persisted JSON configuration document."""

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        configured = path or _env(ENV_CONFIG_FILE, environ)
        self.path = Path(configured).expanduser() if configured else default_config_path()
        self._environ = environ

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> AppConfig:
        """Read the config, migrating a legacy document in place when needed."""

        if not self.path.exists():
            return AppConfig.default(self._environ)

        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
            if is_legacy_config(payload):
                return self._migrate(payload)
            if not isinstance(payload, dict):
                raise ValueError("Configuration root must be a JSON object.")
            return AppConfig.from_mapping(payload)
        except (OSError, ValueError, TypeError) as exc:
            LOGGER.warning(
                "Failed to load config from %s (%s); using defaults.", self.path, exc
            )
            return AppConfig.default(self._environ)

    def _migrate(self, payload: Mapping[str, Any]) -> AppConfig:
        LOGGER.warning("Migrating configuration at %s to the multi-provider format.", self.path)
        migrated = migrate_legacy_config(payload, self._environ)
        try:
            self.save(migrated)
        except OSError:
            LOGGER.warning("Migrated configuration could not be saved; it will be migrated again next run.")
        else:
            LOGGER.info("Configuration migrated successfully.")
        return migrated

    def save(self, config: AppConfig) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as handle:
                json.dump(config.to_mapping(), handle, indent=2)
                handle.write("\n")
        except OSError as exc:
            LOGGER.error("Failed to save config to %s: %s", self.path, exc)
            raise
