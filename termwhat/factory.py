"""Resolve provider configs into live :class:`ProviderClient` instances."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from .anthropic_client import AnthropicProvider
from .config import (
    CREDENTIAL_ENV_VARS,
    AppConfig,
    EnvironmentOverrides,
    ProviderConfig,
    register_provider_config,
    resolve_provider_name,
)
from .llm import ConfigurationError, ProviderClient, UnknownProviderKindError
from .logging import get_logger
from .ollama import OllamaProvider
from .openai_client import OpenAIProvider
from .openrouter import OpenRouterProvider

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ProviderBackend:
    """Registry entry: the adapter class and the variable holding its credential."""

    adapter: Type[ProviderClient]
    credential_var: Optional[str] = None


_PROVIDER_BACKENDS: Dict[str, ProviderBackend] = {
    "ollama": ProviderBackend(OllamaProvider),
    "openai": ProviderBackend(OpenAIProvider, CREDENTIAL_ENV_VARS["openai"]),
    "anthropic": ProviderBackend(AnthropicProvider, CREDENTIAL_ENV_VARS["anthropic"]),
    "openrouter": ProviderBackend(OpenRouterProvider, CREDENTIAL_ENV_VARS["openrouter"]),
}


def register_provider_backend(
    config_type: Type[ProviderConfig],
    adapter: Type[ProviderClient],
    credential_var: Optional[str] = None,
) -> None:
    """Register a custom backend for ``config_type.kind``.

    Credential-bearing adapters receive the key as an ``api_key`` keyword
    argument, read from ``credential_var`` when the provider is created.
    """

    kind = config_type.kind.lower()
    register_provider_config(config_type)
    if credential_var:
        CREDENTIAL_ENV_VARS[kind] = credential_var
    _PROVIDER_BACKENDS[kind] = ProviderBackend(adapter, credential_var)


def _backend_for(kind: str) -> ProviderBackend:
    backend = _PROVIDER_BACKENDS.get(kind.lower())
    if backend is None:
        raise UnknownProviderKindError(f"Unknown provider type: {kind}")
    return backend


def validate_api_key(kind: str, env: Optional[EnvironmentOverrides] = None) -> Tuple[bool, Optional[str]]:
    """Return ``(True, None)`` when *kind* has the credential it needs."""

    try:
        backend = _backend_for(kind)
    except UnknownProviderKindError as exc:
        return False, str(exc)
    if backend.credential_var is None:
        return True, None
    env = env or EnvironmentOverrides.capture()
    if not env.api_key_for(kind.lower()):
        return False, f"{backend.credential_var} environment variable is not set"
    return True, None


def _apply_overrides(config: ProviderConfig, overrides: Mapping[str, Any]) -> ProviderConfig:
    changes = {key: value for key, value in overrides.items() if value is not None}
    if not changes:
        return config
    try:
        return dataclasses.replace(config, **changes)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid {config.kind} setting: {exc}") from exc


def create_provider(
    config: ProviderConfig,
    env: Optional[EnvironmentOverrides] = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ProviderClient:
    """Instantiate the adapter for ``config.kind``.

    Precedence is config < environment < ``overrides`` (command-line flags).
    The credential is checked before the adapter is constructed.
    """

    backend = _backend_for(config.kind)
    env = env or EnvironmentOverrides.capture()
    enriched = env.apply(config)
    if overrides:
        enriched = _apply_overrides(enriched, overrides)

    if backend.credential_var is None:
        return backend.adapter(enriched)

    valid, error = validate_api_key(config.kind, env)
    if not valid:
        raise ConfigurationError(error)
    LOGGER.debug("Creating %s provider for model %s", config.kind, enriched.model)
    return backend.adapter(enriched, api_key=env.api_key_for(config.kind))


def create_provider_from_app_config(
    app_config: AppConfig,
    env: Optional[EnvironmentOverrides] = None,
    *,
    provider_name: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Tuple[str, ProviderClient]:
    """Resolve the selected provider name and build its client.

    The name comes from *provider_name*, then ``TERMWHAT_PROVIDER``, then the
    persisted ``current_provider_name``. An absent entry raises
    :class:`ProviderNotConfiguredError`.
    """

    env = env or EnvironmentOverrides.capture()
    name = resolve_provider_name(app_config, provider_name, env)
    config = app_config.provider_config(name)
    return name, create_provider(config, env, overrides=overrides)
