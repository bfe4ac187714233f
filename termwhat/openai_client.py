"""OpenAI Chat Completions backend and the transport it shares with OpenRouter."""

from __future__ import annotations

import time
from abc import abstractmethod
from typing import Dict, List, Optional, Sequence

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from .config import OPENAI_BASE_URL, OpenAIProviderConfig, ProviderConfig
from .llm import (
    ChunkCallback,
    ConfigurationError,
    ConversationMessage,
    HealthCheckResult,
    ProviderClient,
    ProviderTimeoutError,
    TransportError,
    elapsed_ms,
    iterate_until,
    message_payload,
)

TEMPERATURE = 0.7


class OpenAIProtocolTransport:
    """Request building and error mapping for any OpenAI-compatible endpoint.

    The transport is parameterised by endpoint, credential and extra headers so
    that several named backends can share one implementation of the protocol.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout_ms: int,
        label: str,
        organization: Optional[str] = None,
        default_headers: Optional[Dict[str, str]] = None,
        json_mode: bool = True,
    ) -> None:
        self.base_url = base_url
        self.timeout_ms = timeout_ms
        self.label = label
        self.json_mode = json_mode
        self._client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            default_headers=default_headers or None,
            timeout=timeout_ms / 1000.0,
            max_retries=0,
        )

    def _translate(self, exc: OpenAIError) -> Exception:
        if isinstance(exc, APITimeoutError):
            return ProviderTimeoutError(self.timeout_ms)
        if isinstance(exc, APIStatusError):
            return TransportError(
                f"{self.label} API error: {exc.status_code} {exc.message}",
                status_code=exc.status_code,
            )
        if isinstance(exc, APIConnectionError):
            return TransportError(f"Unable to reach {self.label} at {self.base_url}: {exc}")
        return TransportError(f"{self.label} API error: {exc}")

    def list_models(self) -> List[str]:
        try:
            return [model.id for model in self._client.models.list() if getattr(model, "id", None)]
        except OpenAIError as exc:
            raise self._translate(exc) from exc

    def chat(
        self,
        model: str,
        messages: Sequence[ConversationMessage],
        on_chunk: Optional[ChunkCallback] = None,
    ) -> str:
        request = {
            "model": model,
            "messages": message_payload(messages),
            "temperature": TEMPERATURE,
        }
        if self.json_mode:
            request["response_format"] = {"type": "json_object"}

        deadline = time.monotonic() + self.timeout_ms / 1000.0
        try:
            if on_chunk is None:
                response = self._client.chat.completions.create(stream=False, **request)
                choices = getattr(response, "choices", None) or []
                if not choices:
                    return ""
                return choices[0].message.content or ""

            parts: List[str] = []
            stream = self._client.chat.completions.create(stream=True, **request)
            for chunk in iterate_until(stream, deadline, self.timeout_ms, stream.close):
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content or ""
                if content:
                    parts.append(content)
                    on_chunk(content)
            return "".join(parts)
        except OpenAIError as exc:
            raise self._translate(exc) from exc


class OpenAIProtocolProvider(ProviderClient):
    """Provider whose wire protocol is delegated to an :class:`OpenAIProtocolTransport`."""

    def __init__(self, config: ProviderConfig, *, api_key: Optional[str]) -> None:
        if not api_key:
            raise ConfigurationError(f"An API key is required for the {self.kind} provider.")
        super().__init__(config)
        self._api_key = api_key
        self.transport = self._build_transport()

    @abstractmethod
    def _build_transport(self) -> OpenAIProtocolTransport:
        ...

    def _config_changed(self, fields: set) -> None:
        if fields - {"model"}:
            self.transport = self._build_transport()

    @property
    def base_url(self) -> str:
        return self.transport.base_url

    def chat(
        self,
        messages: Sequence[ConversationMessage],
        *,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> str:
        return self.transport.chat(self.config.model, messages, on_chunk)

    def list_models(self) -> List[str]:
        return self.transport.list_models()

    def health_check(self) -> HealthCheckResult:
        started = time.monotonic()
        try:
            models = self.transport.list_models()
        except Exception as exc:  # health checks report failures, they never raise
            return HealthCheckResult(healthy=False, error=str(exc) or "Unknown error")
        return HealthCheckResult(healthy=True, models=models, response_time_ms=elapsed_ms(started))


class OpenAIProvider(OpenAIProtocolProvider):
    kind = "openai"

    config: OpenAIProviderConfig

    def _build_transport(self) -> OpenAIProtocolTransport:
        return OpenAIProtocolTransport(
            api_key=self._api_key,
            base_url=self.config.base_url or OPENAI_BASE_URL,
            organization=self.config.organization_id,
            timeout_ms=self.config.timeout_ms,
            label="OpenAI",
        )
