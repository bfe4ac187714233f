"""Provider contract, shared message models and the error taxonomy."""

from __future__ import annotations

import copy
import dataclasses
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, Iterable, Iterator, List, Optional, Sequence, TypeVar

if TYPE_CHECKING:  # pragma: no cover - import for type checkers only
    from .config import ProviderConfig

from .logging import get_logger

LOGGER = get_logger(__name__)


ChunkCallback = Callable[[str], None]

ROLES = ("system", "user", "assistant")

T = TypeVar("T")


@dataclass
class ConversationMessage:
    """One entry of the ordered chat history."""

    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unsupported message role '{self.role}'.")

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class HealthCheckResult:
    """Outcome of a single reachability check."""

    healthy: bool
    models: Optional[List[str]] = None
    error: Optional[str] = None
    response_time_ms: Optional[int] = None


class ProviderError(RuntimeError):
    """Base exception raised for chat provider errors."""


class ConfigurationError(ProviderError):
    """Raised when a provider is missing a credential or has an invalid configuration."""


class UnknownProviderKindError(ConfigurationError):
    """Raised when no backend is registered for a provider kind."""


class ProviderNotConfiguredError(ConfigurationError):
    """Raised when a provider name is absent from the application config."""


class TransportError(ProviderError):
    """Raised when the provider cannot be reached or answers with a non-2xx status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderTimeoutError(ProviderError):
    """Raised when a request exceeds the configured timeout."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Request timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


def message_payload(messages: Sequence[ConversationMessage]) -> List[Dict[str, str]]:
    return [message.as_dict() for message in messages]


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _close_quietly(close: Callable[[], None]) -> None:
    try:
        close()
    except Exception as exc:  # the reading side reports the failure
        LOGGER.debug("Closing stream failed: %s", exc)


def iterate_until(
    items: Iterable[T],
    deadline: float,
    timeout_ms: int,
    close: Optional[Callable[[], None]] = None,
) -> Iterator[T]:
    """Yield from a stream until ``deadline``.

    When ``close`` is given a timer calls it at the deadline, so a stream that
    stalls between chunks is cut off instead of waiting for the next read to
    time out. Either way the caller sees :class:`ProviderTimeoutError`.
    """

    expired = threading.Event()

    def expire() -> None:
        expired.set()
        if close is not None:
            _close_quietly(close)

    timer = None
    if close is not None:
        timer = threading.Timer(max(deadline - time.monotonic(), 0.0), expire)
        timer.daemon = True
        timer.start()
    try:
        for item in items:
            if expired.is_set() or time.monotonic() > deadline:
                expire()
                raise ProviderTimeoutError(timeout_ms)
            yield item
    except ProviderTimeoutError:
        raise
    except Exception as exc:
        if expired.is_set():
            raise ProviderTimeoutError(timeout_ms) from exc
        raise
    finally:
        if timer is not None:
            timer.cancel()
    if expired.is_set():
        raise ProviderTimeoutError(timeout_ms)


class ProviderClient(ABC):
    """Uniform contract implemented by every chat backend.

    ``chat`` streams when ``on_chunk`` is supplied: each text fragment is handed
    to the callback as it arrives and the concatenated text is still returned.
    ``health_check`` never raises; failures are reported through the result.
    """

    kind: ClassVar[str]

    def __init__(self, config: "ProviderConfig") -> None:
        self.config = config

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    @abstractmethod
    def chat(
        self,
        messages: Sequence[ConversationMessage],
        *,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> str:
        ...

    @abstractmethod
    def health_check(self) -> HealthCheckResult:
        ...

    @abstractmethod
    def list_models(self) -> List[str]:
        ...

    # ------------------------------------------------------------------
    # Configuration accessors
    # ------------------------------------------------------------------
    def get_config(self) -> "ProviderConfig":
        return copy.deepcopy(self.config)

    def update_config(self, **changes: Any) -> None:
        """Merge *changes* into the live config and rebuild dependent clients."""

        kind = changes.pop("kind", self.config.kind)
        if kind != self.config.kind:
            raise ConfigurationError(
                f"Cannot change provider kind from '{self.config.kind}' to '{kind}'."
            )
        try:
            self.config = dataclasses.replace(self.config, **changes)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid {self.kind} setting: {exc}") from exc
        self._config_changed(set(changes))

    def _config_changed(self, fields: set) -> None:
        """Hook for adapters whose internal clients depend on config fields."""

    def get_provider_kind(self) -> str:
        return self.kind

    def get_model_name(self) -> str:
        return self.config.model

    # ------------------------------------------------------------------
    # Timeout helpers
    # ------------------------------------------------------------------
    @property
    def timeout_seconds(self) -> float:
        return self.config.timeout_ms / 1000.0

    def _deadline(self) -> float:
        return time.monotonic() + self.timeout_seconds

    def _check_deadline(self, deadline: float) -> None:
        if time.monotonic() > deadline:
            raise ProviderTimeoutError(self.config.timeout_ms)

    def _until_deadline(
        self,
        items: Iterable[T],
        deadline: float,
        close: Optional[Callable[[], None]] = None,
    ) -> Iterator[T]:
        return iterate_until(items, deadline, self.config.timeout_ms, close)
