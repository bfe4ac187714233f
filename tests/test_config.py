"""Tests for config models, legacy migration and the config store."""

import json

import pytest

from termwhat.config import (
    DEFAULT_OLLAMA_HOST,
    DEFAULT_TIMEOUT_MS,
    DOCKER_OLLAMA_HOST,
    AnthropicProviderConfig,
    AppConfig,
    ConfigStore,
    EnvironmentOverrides,
    OllamaProviderConfig,
    OpenAIProviderConfig,
    OpenRouterProviderConfig,
    is_legacy_config,
    provider_config_from_mapping,
    resolve_provider_name,
)
from termwhat.llm import ProviderNotConfiguredError, UnknownProviderKindError


def test_missing_file_returns_default_without_writing(store, config_path):
    config = store.load()

    assert config.current_provider_name == "ollama"
    assert config.providers == {"ollama": OllamaProviderConfig()}
    assert config.providers["ollama"].host_url == DEFAULT_OLLAMA_HOST
    assert not config_path.exists()


def test_docker_default_host(config_path):
    config = ConfigStore(config_path, environ={"DOCKER": "true"}).load()
    assert config.providers["ollama"].host_url == DOCKER_OLLAMA_HOST


def test_config_path_from_environment(tmp_path):
    target = tmp_path / "custom.json"
    store = ConfigStore(environ={"TERMWHAT_CONFIG_FILE": str(target)})
    assert store.path == target


def test_legacy_document_is_migrated_in_place(store, config_path):
    config_path.write_text(
        json.dumps({"hostUrl": "http://box:11434", "model": "mistral", "timeoutMs": 30000}),
        encoding="utf-8",
    )

    config = store.load()

    assert config.current_provider_name == "ollama"
    assert config.providers == {
        "ollama": OllamaProviderConfig(model="mistral", timeout_ms=30000, host_url="http://box:11434")
    }
    written = json.loads(config_path.read_text(encoding="utf-8"))
    assert written["currentProviderName"] == "ollama"
    assert written["providers"]["ollama"]["hostUrl"] == "http://box:11434"


def test_legacy_migration_is_idempotent(store, config_path):
    config_path.write_text(json.dumps({"model": "mistral"}), encoding="utf-8")

    first = store.load()
    snapshot = config_path.read_text(encoding="utf-8")
    second = store.load()

    assert first == second
    assert config_path.read_text(encoding="utf-8") == snapshot
    assert second.providers["ollama"].timeout_ms == DEFAULT_TIMEOUT_MS
    assert second.providers["ollama"].host_url == DEFAULT_OLLAMA_HOST


def test_legacy_aliases():
    assert is_legacy_config({"ollamaHost": "http://x:1", "timeout": 5})
    assert not is_legacy_config({"currentProviderName": "ollama", "providers": {}, "model": "x"})
    assert not is_legacy_config(["model"])


def test_save_then_load_round_trips(store):
    original = AppConfig(
        current_provider_name="router",
        providers={
            "ollama": OllamaProviderConfig(model="phi3", host_url="http://gpu:11434", timeout_ms=1000),
            "openai": OpenAIProviderConfig(model="gpt-4o", base_url="https://proxy/v1", organization_id="org-1"),
            "anthropic": AnthropicProviderConfig(),
            "router": OpenRouterProviderConfig(site_url="https://example.com", app_name="demo"),
        },
    )

    store.save(original)

    assert store.load() == original


def test_saved_document_uses_camel_case_and_omits_empty_fields(store, config_path):
    store.save(AppConfig(providers={"openai": OpenAIProviderConfig()}, current_provider_name="openai"))

    written = json.loads(config_path.read_text(encoding="utf-8"))

    assert written["providers"]["openai"] == {"kind": "openai", "model": "gpt-4", "timeoutMs": DEFAULT_TIMEOUT_MS}


def test_corrupt_file_falls_back_to_default(store, config_path):
    config_path.write_text("{not json", encoding="utf-8")

    config = store.load()

    assert config == AppConfig.default({})
    assert config_path.read_text(encoding="utf-8") == "{not json"


def test_unknown_kind_is_skipped(store, config_path):
    config_path.write_text(
        json.dumps(
            {
                "currentProviderName": "ollama",
                "providers": {
                    "ollama": {"kind": "ollama", "model": "llama3.2"},
                    "mystery": {"kind": "mystery", "model": "x"},
                },
            }
        ),
        encoding="utf-8",
    )

    assert list(store.load().providers) == ["ollama"]


def test_entry_aliases_are_accepted():
    config = provider_config_from_mapping({"provider": "ollama", "host": "http://h:1", "timeout": "5000"})

    assert config == OllamaProviderConfig(host_url="http://h:1", timeout_ms=5000)


def test_unknown_kind_raises():
    with pytest.raises(UnknownProviderKindError):
        provider_config_from_mapping({"kind": "mystery"})


def test_provider_config_lookup():
    config = AppConfig.default({})
    assert config.provider_config() is config.providers["ollama"]
    with pytest.raises(ProviderNotConfiguredError, match='Provider "openai" not found'):
        config.provider_config("openai")


def test_environment_overrides_apply_without_mutating():
    env = EnvironmentOverrides.capture(
        {"TERMWHAT_MODEL": "qwen2", "TERMWHAT_OLLAMA_HOST": "http://env:11434", "TERMWHAT_OPENAI_API_KEY": " "}
    )
    base = OllamaProviderConfig()

    enriched = env.apply(base)

    assert enriched.model == "qwen2"
    assert enriched.host_url == "http://env:11434"
    assert base.model == "llama3.2"
    assert env.api_key_for("openai") is None


def test_environment_host_ignored_for_cloud_backends():
    env = EnvironmentOverrides(ollama_host="http://env:11434")
    assert env.apply(OpenAIProviderConfig()) == OpenAIProviderConfig()


def test_provider_name_resolution_order():
    config = AppConfig(current_provider_name="ollama")
    env = EnvironmentOverrides(provider="anthropic")

    assert resolve_provider_name(config, None, EnvironmentOverrides()) == "ollama"
    assert resolve_provider_name(config, None, env) == "anthropic"
    assert resolve_provider_name(config, "openai", env) == "openai"
