"""Client for the Anthropic Messages API."""

from __future__ import annotations

import time
from typing import Dict, List, Optional, Sequence, Tuple

from anthropic import (
    Anthropic,
    AnthropicError,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
)

from .config import AnthropicProviderConfig
from .llm import (
    ChunkCallback,
    ConfigurationError,
    ConversationMessage,
    HealthCheckResult,
    ProviderClient,
    ProviderTimeoutError,
    TransportError,
    elapsed_ms,
)

MAX_TOKENS = 4096
TEMPERATURE = 0.7

# The Messages API has no model listing endpoint.
KNOWN_MODELS = (
    "claude-3-5-sonnet-20241022",
    "claude-3-opus-20240229",
    "claude-3-sonnet-20240229",
    "claude-3-haiku-20240307",
)


def split_system_messages(
    messages: Sequence[ConversationMessage],
) -> Tuple[str, List[Dict[str, str]]]:
    """Separate system instructions from the user/assistant turns.

    Anthropic accepts a single top-level ``system`` string and only ``user`` and
    ``assistant`` roles inside ``messages``.
    """

    system = "\n\n".join(message.content for message in messages if message.role == "system")
    turns = [
        {"role": message.role, "content": message.content}
        for message in messages
        if message.role != "system"
    ]
    return system, turns


class AnthropicProvider(ProviderClient):
    kind = "anthropic"

    config: AnthropicProviderConfig

    def __init__(self, config: AnthropicProviderConfig, *, api_key: Optional[str]) -> None:
        if not api_key:
            raise ConfigurationError("An API key is required for the anthropic provider.")
        super().__init__(config)
        self._api_key = api_key
        self._client = self._build_client()

    def _build_client(self) -> Anthropic:
        return Anthropic(api_key=self._api_key, timeout=self.timeout_seconds, max_retries=0)

    def _config_changed(self, fields: set) -> None:
        if "timeout_ms" in fields:
            self._client = self._build_client()

    def _translate(self, exc: AnthropicError) -> Exception:
        if isinstance(exc, APITimeoutError):
            return ProviderTimeoutError(self.config.timeout_ms)
        if isinstance(exc, APIStatusError):
            return TransportError(
                f"Anthropic API error: {exc.status_code} {exc.message}", status_code=exc.status_code
            )
        if isinstance(exc, APIConnectionError):
            return TransportError(f"Unable to reach Anthropic: {exc}")
        return TransportError(f"Anthropic API error: {exc}")

    def list_models(self) -> List[str]:
        return list(KNOWN_MODELS)

    def health_check(self) -> HealthCheckResult:
        started = time.monotonic()
        try:
            self._client.messages.create(
                model=self.config.model,
                max_tokens=1,
                messages=[{"role": "user", "content": "test"}],
            )
        except Exception as exc:  # health checks report failures, they never raise
            return HealthCheckResult(healthy=False, error=str(exc) or "Unknown error")
        return HealthCheckResult(
            healthy=True, models=list(KNOWN_MODELS), response_time_ms=elapsed_ms(started)
        )

    def chat(
        self,
        messages: Sequence[ConversationMessage],
        *,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> str:
        system, turns = split_system_messages(messages)
        request = {
            "model": self.config.model,
            "max_tokens": MAX_TOKENS,
            "messages": turns,
            "temperature": TEMPERATURE,
        }
        if system:
            request["system"] = system

        deadline = self._deadline()
        try:
            if on_chunk is None:
                response = self._client.messages.create(**request)
                for block in response.content:
                    if block.type == "text":
                        return block.text
                return ""

            parts: List[str] = []
            with self._client.messages.stream(**request) as stream:
                for text in self._until_deadline(stream.text_stream, deadline, stream.close):
                    if text:
                        parts.append(text)
                        on_chunk(text)
            return "".join(parts)
        except AnthropicError as exc:
            raise self._translate(exc) from exc
