"""OpenRouter backend: the OpenAI protocol against a fixed endpoint."""

from __future__ import annotations

from typing import Dict

from .config import OPENROUTER_BASE_URL, OpenRouterProviderConfig
from .openai_client import OpenAIProtocolProvider, OpenAIProtocolTransport


def attribution_headers(config: OpenRouterProviderConfig) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if config.site_url:
        headers["HTTP-Referer"] = config.site_url
    if config.app_name:
        headers["X-Title"] = config.app_name
    return headers


class OpenRouterProvider(OpenAIProtocolProvider):
    kind = "openrouter"

    config: OpenRouterProviderConfig

    def _build_transport(self) -> OpenAIProtocolTransport:
        return OpenAIProtocolTransport(
            api_key=self._api_key,
            base_url=OPENROUTER_BASE_URL,
            default_headers=attribution_headers(self.config),
            timeout_ms=self.config.timeout_ms,
            label="OpenRouter",
        )
