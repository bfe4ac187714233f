"""Local backend talking to an Ollama daemon.

The native :mod:`ollama` client is preferred. When it cannot be constructed
(for example because the configured host is not a valid URL) the provider
degrades to plain HTTP through :mod:`requests` with the same timeout rules.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

import httpx
import ollama
import requests

from .config import OllamaProviderConfig
from .llm import (
    ChunkCallback,
    ConversationMessage,
    HealthCheckResult,
    ProviderClient,
    ProviderTimeoutError,
    TransportError,
    elapsed_ms,
    message_payload,
)
from .logging import get_logger

LOGGER = get_logger(__name__)

DIAGNOSTIC_TIMEOUT = 5.0
TEMPERATURE = 0.7


def _content(payload: Any) -> str:
    message = payload.get("message") or {}
    return message.get("content") or ""


class OllamaProvider(ProviderClient):
    kind = "ollama"

    def __init__(
        self,
        config: OllamaProviderConfig,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(config)
        self._session = session or requests.Session()
        self._client: Optional[ollama.Client] = self._build_client()

    @property
    def base_url(self) -> str:
        return self.config.host_url.rstrip("/")

    @property
    def uses_native_client(self) -> bool:
        return self._client is not None

    def _build_client(self) -> Optional[ollama.Client]:
        try:
            return ollama.Client(host=self.config.host_url, timeout=self.timeout_seconds)
        except Exception as exc:  # the library validates the host eagerly
            LOGGER.warning("Failed to initialize Ollama client, using HTTP fallback: %s", exc)
            return None

    def _config_changed(self, fields: set) -> None:
        if fields & {"host_url", "timeout_ms"}:
            self._client = self._build_client()

    # ------------------------------------------------------------------
    # Model discovery
    # ------------------------------------------------------------------
    def _fetch_tags(self) -> List[str]:
        url = f"{self.base_url}/api/tags"
        try:
            response = self._session.get(url, timeout=DIAGNOSTIC_TIMEOUT)
        except requests.Timeout as exc:
            raise TransportError(
                f"Ollama at {self.config.host_url} did not answer within {DIAGNOSTIC_TIMEOUT:.0f}s"
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Unable to reach Ollama at {self.config.host_url}: {exc}") from exc

        if not response.ok:
            raise TransportError(
                f"HTTP {response.status_code}: {response.reason}", status_code=response.status_code
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError("Ollama returned an invalid /api/tags payload.") from exc
        models = payload.get("models") or []
        return [model["name"] for model in models if model.get("name")]

    def list_models(self) -> List[str]:
        return self._fetch_tags()

    def health_check(self) -> HealthCheckResult:
        started = time.monotonic()
        try:
            models = self._fetch_tags()
        except Exception as exc:  # health checks report failures, they never raise
            return HealthCheckResult(healthy=False, error=str(exc) or "Unknown error")
        return HealthCheckResult(healthy=True, models=models, response_time_ms=elapsed_ms(started))

    # ------------------------------------------------------------------
    # Chat interaction
    # ------------------------------------------------------------------
    def chat(
        self,
        messages: Sequence[ConversationMessage],
        *,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> str:
        deadline = self._deadline()
        if self._client is not None:
            return self._chat_with_library(messages, on_chunk, deadline)
        return self._chat_with_http(messages, on_chunk, deadline)

    def _chat_with_library(
        self,
        messages: Sequence[ConversationMessage],
        on_chunk: Optional[ChunkCallback],
        deadline: float,
    ) -> str:
        request = {
            "model": self.config.model,
            "messages": message_payload(messages),
            "format": "json",
            "options": {"temperature": TEMPERATURE},
        }
        try:
            if on_chunk is None:
                return _content(self._client.chat(stream=False, **request))
            stream = self._client.chat(stream=True, **request)
            return self._collect(stream, on_chunk, deadline)
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(self.config.timeout_ms) from exc
        except ollama.ResponseError as exc:
            raise TransportError(
                f"Ollama API error: {exc.status_code} {exc.error}", status_code=exc.status_code
            ) from exc
        except (httpx.HTTPError, ConnectionError) as exc:
            self._check_deadline(deadline)
            raise TransportError(f"Unable to reach Ollama at {self.config.host_url}: {exc}") from exc

    def _chat_with_http(
        self,
        messages: Sequence[ConversationMessage],
        on_chunk: Optional[ChunkCallback],
        deadline: float,
    ) -> str:
        payload = {
            "model": self.config.model,
            "messages": message_payload(messages),
            "format": "json",
            "stream": on_chunk is not None,
            "options": {"temperature": TEMPERATURE},
        }
        try:
            response = self._session.post(
                f"{self.base_url}/api/chat",
                json=payload,
                stream=on_chunk is not None,
                timeout=self.timeout_seconds,
            )
            if not response.ok:
                raise TransportError(
                    f"Ollama API error: {response.status_code} {response.reason}",
                    status_code=response.status_code,
                )
            if on_chunk is None:
                try:
                    return _content(response.json())
                except ValueError as exc:
                    raise TransportError("Ollama returned a response that is not valid JSON.") from exc
            try:
                return self._collect(
                    self._decode_lines(response.iter_lines()), on_chunk, deadline, close=response.close
                )
            finally:
                response.close()
        except requests.Timeout as exc:
            raise ProviderTimeoutError(self.config.timeout_ms) from exc
        except requests.RequestException as exc:
            self._check_deadline(deadline)
            raise TransportError(f"Unable to reach Ollama at {self.config.host_url}: {exc}") from exc

    @staticmethod
    def _decode_lines(lines: Iterable[bytes]) -> Iterable[Mapping[str, Any]]:
        for raw in lines:
            if not raw or not raw.strip():
                continue
            try:
                fragment = json.loads(raw)
            except ValueError:
                # partial frames are expected on slow links
                LOGGER.debug("Skipping malformed stream fragment: %r", raw)
                continue
            if isinstance(fragment, dict):
                yield fragment

    def _collect(
        self,
        fragments: Iterable[Mapping[str, Any]],
        on_chunk: ChunkCallback,
        deadline: float,
        close: Optional[Callable[[], None]] = None,
    ) -> str:
        parts: List[str] = []
        for fragment in self._until_deadline(fragments, deadline, close):
            content = _content(fragment)
            if content:
                parts.append(content)
                on_chunk(content)
        return "".join(parts)
