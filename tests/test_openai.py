"""Tests for the OpenAI and OpenRouter providers."""

import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from termwhat.config import OPENAI_BASE_URL, OPENROUTER_BASE_URL, OpenAIProviderConfig, OpenRouterProviderConfig
from termwhat.llm import ConfigurationError, ConversationMessage, ProviderTimeoutError, TransportError
from termwhat.openai_client import OpenAIProvider
from termwhat.openrouter import OpenRouterProvider, attribution_headers

from .conftest import FakeStream

MESSAGES = [ConversationMessage("system", "be terse"), ConversationMessage("user", "disk usage")]
REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


@pytest.fixture
def sdk(monkeypatch):
    client_class = MagicMock(name="OpenAI")
    monkeypatch.setattr("termwhat.openai_client.OpenAI", client_class)
    return client_class


def test_missing_key_is_rejected(sdk):
    with pytest.raises(ConfigurationError):
        OpenAIProvider(OpenAIProviderConfig(), api_key="")
    sdk.assert_not_called()


def test_unary_chat_requests_json(sdk):
    completions = sdk.return_value.chat.completions
    completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="{\"title\": \"x\"}"))]
    )
    provider = OpenAIProvider(OpenAIProviderConfig(model="gpt-4o"), api_key="sk")

    assert provider.chat(MESSAGES) == "{\"title\": \"x\"}"
    kwargs = completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["stream"] is False
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"] == [m.as_dict() for m in MESSAGES]


def test_unary_chat_without_choices(sdk):
    sdk.return_value.chat.completions.create.return_value = SimpleNamespace(choices=[])
    provider = OpenAIProvider(OpenAIProviderConfig(), api_key="sk")

    assert provider.chat(MESSAGES) == ""


def test_streaming_concatenates_chunks(sdk):
    sdk.return_value.chat.completions.create.return_value = FakeStream(
        [_chunk("{\"a\""), SimpleNamespace(choices=[]), _chunk(None), _chunk(": 1}")]
    )
    provider = OpenAIProvider(OpenAIProviderConfig(), api_key="sk")
    chunks = []

    text = provider.chat(MESSAGES, on_chunk=chunks.append)

    assert text == "{\"a\": 1}"
    assert chunks == ["{\"a\"", ": 1}"]


def test_stalled_stream_is_closed_at_deadline(sdk):
    stream = FakeStream([_chunk("{\"a\"")], stall=True)
    sdk.return_value.chat.completions.create.return_value = stream
    provider = OpenAIProvider(OpenAIProviderConfig(timeout_ms=50), api_key="sk")
    chunks = []
    started = time.monotonic()

    with pytest.raises(ProviderTimeoutError) as excinfo:
        provider.chat(MESSAGES, on_chunk=chunks.append)

    assert time.monotonic() - started < 2
    assert stream.closed.is_set()
    assert chunks == ["{\"a\""]
    assert excinfo.value.timeout_ms == 50


def test_status_error_is_translated(sdk):
    response = httpx.Response(401, request=REQUEST)
    sdk.return_value.chat.completions.create.side_effect = openai.AuthenticationError(
        "Incorrect API key", response=response, body=None
    )
    provider = OpenAIProvider(OpenAIProviderConfig(), api_key="sk")

    with pytest.raises(TransportError) as excinfo:
        provider.chat(MESSAGES)
    assert excinfo.value.status_code == 401


def test_timeout_is_translated(sdk):
    sdk.return_value.chat.completions.create.side_effect = openai.APITimeoutError(request=REQUEST)
    provider = OpenAIProvider(OpenAIProviderConfig(timeout_ms=500), api_key="sk")

    with pytest.raises(ProviderTimeoutError):
        provider.chat(MESSAGES)


def test_health_check_failure_never_raises(sdk):
    sdk.return_value.models.list.side_effect = openai.APIConnectionError(request=REQUEST)
    provider = OpenAIProvider(OpenAIProviderConfig(), api_key="sk")

    result = provider.health_check()

    assert result.healthy is False
    assert result.error


def test_list_models(sdk):
    sdk.return_value.models.list.return_value = [SimpleNamespace(id="gpt-4"), SimpleNamespace(id="gpt-4o")]
    provider = OpenAIProvider(OpenAIProviderConfig(), api_key="sk")

    assert provider.list_models() == ["gpt-4", "gpt-4o"]
    assert provider.health_check().models == ["gpt-4", "gpt-4o"]


def test_custom_base_url_and_organization(sdk):
    provider = OpenAIProvider(
        OpenAIProviderConfig(base_url="https://proxy.local/v1", organization_id="org-9"), api_key="sk"
    )

    kwargs = sdk.call_args.kwargs
    assert kwargs["base_url"] == "https://proxy.local/v1"
    assert kwargs["organization"] == "org-9"
    assert provider.base_url == "https://proxy.local/v1"


def test_model_change_keeps_transport(sdk):
    provider = OpenAIProvider(OpenAIProviderConfig(), api_key="sk")

    provider.update_config(model="gpt-4o-mini")
    assert sdk.call_count == 1
    assert provider.get_model_name() == "gpt-4o-mini"

    provider.update_config(timeout_ms=2000)
    assert sdk.call_count == 2
    assert sdk.call_args.kwargs["timeout"] == 2.0


def test_openrouter_endpoint_and_attribution(sdk):
    config = OpenRouterProviderConfig(site_url="https://example.com", app_name="demo")

    provider = OpenRouterProvider(config, api_key="sk-or")

    kwargs = sdk.call_args.kwargs
    assert kwargs["base_url"] == OPENROUTER_BASE_URL
    assert kwargs["api_key"] == "sk-or"
    assert kwargs["default_headers"] == {"HTTP-Referer": "https://example.com", "X-Title": "demo"}
    assert provider.get_provider_kind() == "openrouter"
    assert provider.base_url != OPENAI_BASE_URL


def test_openrouter_without_attribution(sdk):
    OpenRouterProvider(OpenRouterProviderConfig(), api_key="sk-or")

    assert sdk.call_args.kwargs["default_headers"] is None
    assert attribution_headers(OpenRouterProviderConfig(app_name="only")) == {"X-Title": "only"}
