"""Tests for provider construction and credential validation."""

from dataclasses import dataclass
from typing import ClassVar
from unittest.mock import MagicMock

import pytest

from termwhat import factory
from termwhat.anthropic_client import AnthropicProvider
from termwhat.config import (
    OPENAI_BASE_URL,
    AnthropicProviderConfig,
    AppConfig,
    EnvironmentOverrides,
    OllamaProviderConfig,
    OpenAIProviderConfig,
    OpenRouterProviderConfig,
    ProviderConfig,
)
from termwhat.factory import (
    create_provider,
    create_provider_from_app_config,
    register_provider_backend,
    validate_api_key,
)
from termwhat.llm import ConfigurationError, ProviderNotConfiguredError, UnknownProviderKindError
from termwhat.ollama import OllamaProvider
from termwhat.openai_client import OpenAIProvider

from .conftest import FakeProvider


@pytest.fixture
def sdk_mocks(monkeypatch):
    mocks = {
        "openai": MagicMock(name="OpenAI"),
        "anthropic": MagicMock(name="Anthropic"),
        "ollama": MagicMock(name="ollama.Client"),
    }
    monkeypatch.setattr("termwhat.openai_client.OpenAI", mocks["openai"])
    monkeypatch.setattr("termwhat.anthropic_client.Anthropic", mocks["anthropic"])
    monkeypatch.setattr("termwhat.ollama.ollama.Client", mocks["ollama"])
    return mocks


@pytest.mark.parametrize(
    "config, sdk",
    [
        (OpenAIProviderConfig(), "openai"),
        (AnthropicProviderConfig(), "anthropic"),
        (OpenRouterProviderConfig(), "openai"),
    ],
)
def test_missing_credential_constructs_nothing(sdk_mocks, config, sdk):
    with pytest.raises(ConfigurationError, match="environment variable is not set"):
        create_provider(config, EnvironmentOverrides())

    sdk_mocks[sdk].assert_not_called()


def test_ollama_needs_no_credential(sdk_mocks):
    provider = create_provider(OllamaProviderConfig(), EnvironmentOverrides())

    assert isinstance(provider, OllamaProvider)
    sdk_mocks["ollama"].assert_called_once_with(host="http://localhost:11434", timeout=60.0)


def test_openai_receives_key_and_defaults(sdk_mocks):
    env = EnvironmentOverrides(api_keys={"openai": "sk-test"})

    provider = create_provider(OpenAIProviderConfig(timeout_ms=1500), env)

    assert isinstance(provider, OpenAIProvider)
    kwargs = sdk_mocks["openai"].call_args.kwargs
    assert kwargs["api_key"] == "sk-test"
    assert kwargs["base_url"] == OPENAI_BASE_URL
    assert kwargs["timeout"] == 1.5
    assert kwargs["max_retries"] == 0


def test_anthropic_receives_key(sdk_mocks):
    env = EnvironmentOverrides(api_keys={"anthropic": "sk-ant"})

    provider = create_provider(AnthropicProviderConfig(), env)

    assert isinstance(provider, AnthropicProvider)
    assert sdk_mocks["anthropic"].call_args.kwargs["api_key"] == "sk-ant"


def test_precedence_config_env_overrides(sdk_mocks):
    env = EnvironmentOverrides(model="env-model", ollama_host="http://env:11434")
    config = OllamaProviderConfig(model="file-model", host_url="http://file:11434")

    provider = create_provider(config, env, overrides={"model": "flag-model", "host_url": None})

    assert provider.get_model_name() == "flag-model"
    assert provider.get_config().host_url == "http://env:11434"
    assert config.model == "file-model"


def test_invalid_override_field_raises(sdk_mocks):
    env = EnvironmentOverrides(api_keys={"openai": "sk-test"})
    with pytest.raises(ConfigurationError):
        create_provider(OpenAIProviderConfig(), env, overrides={"host_url": "http://x"})


@dataclass
class MysteryConfig(ProviderConfig):
    kind: ClassVar[str] = "mystery"


def test_unknown_kind():
    with pytest.raises(UnknownProviderKindError):
        create_provider(MysteryConfig(), EnvironmentOverrides())
    assert validate_api_key("mystery", EnvironmentOverrides())[0] is False


def test_validate_api_key():
    assert validate_api_key("ollama", EnvironmentOverrides()) == (True, None)
    assert validate_api_key("openai", EnvironmentOverrides(api_keys={"openai": "sk"})) == (True, None)
    valid, error = validate_api_key("openrouter", EnvironmentOverrides())
    assert not valid
    assert "TERMWHAT_OPENROUTER_API_KEY" in error


def test_missing_entry_raises_not_configured(sdk_mocks):
    with pytest.raises(ProviderNotConfiguredError):
        create_provider_from_app_config(AppConfig.default({}), EnvironmentOverrides(), provider_name="openai")


def test_app_config_selection_uses_environment(sdk_mocks):
    app_config = AppConfig(
        current_provider_name="ollama",
        providers={"ollama": OllamaProviderConfig(), "work": OpenAIProviderConfig(model="gpt-4o")},
    )
    env = EnvironmentOverrides(provider="work", api_keys={"openai": "sk-test"})

    name, provider = create_provider_from_app_config(app_config, env)

    assert name == "work"
    assert provider.get_provider_kind() == "openai"
    assert provider.get_model_name() == "gpt-4o"


@dataclass
class EchoConfig(ProviderConfig):
    kind: ClassVar[str] = "echo"

    model: str = "echo-1"


class EchoProvider(FakeProvider):
    kind = "echo"

    def __init__(self, config, *, api_key):
        super().__init__(config)
        self.api_key = api_key


def test_register_custom_backend(monkeypatch):
    monkeypatch.setattr(factory, "_PROVIDER_BACKENDS", dict(factory._PROVIDER_BACKENDS))
    monkeypatch.setattr(factory, "CREDENTIAL_ENV_VARS", dict(factory.CREDENTIAL_ENV_VARS))
    register_provider_backend(EchoConfig, EchoProvider, "TERMWHAT_ECHO_API_KEY")

    provider = create_provider(EchoConfig(), EnvironmentOverrides(api_keys={"echo": "secret"}))

    assert isinstance(provider, EchoProvider)
    assert provider.api_key == "secret"
