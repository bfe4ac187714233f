"""Shared test fixtures for termwhat."""

import io
import json
import threading
from typing import List, Optional

import pytest
from rich.console import Console

from termwhat.config import ConfigStore, OllamaProviderConfig
from termwhat.console import _THEME
from termwhat.llm import HealthCheckResult, ProviderClient

ENV_VARS = (
    "TERMWHAT_PROVIDER",
    "TERMWHAT_MODEL",
    "TERMWHAT_OLLAMA_HOST",
    "TERMWHAT_OPENAI_API_KEY",
    "TERMWHAT_ANTHROPIC_API_KEY",
    "TERMWHAT_OPENROUTER_API_KEY",
    "TERMWHAT_CONFIG_FILE",
    "TERMWHAT_ENV_FILE",
    "DOCKER",
)


def answer_json(title: str = "List files", command: str = "ls -la") -> str:
    return json.dumps(
        {
            "title": title,
            "os_assumptions": ["POSIX shell"],
            "commands": [
                {"label": "List", "command": command, "explanation": "Lists files", "risk_level": "low"}
            ],
            "pitfalls": [],
            "verification_steps": ["Check the output"],
        }
    )


class FakeProvider(ProviderClient):
    """In-memory provider that replays canned replies and records every call."""

    kind = "ollama"

    def __init__(self, config=None, replies: Optional[List] = None, kind: Optional[str] = None) -> None:
        super().__init__(config or OllamaProviderConfig())
        if kind:
            self.kind = kind
        self.replies = list(replies or [])
        self.calls: List[List] = []

    def chat(self, messages, *, on_chunk=None):
        self.calls.append([(message.role, message.content) for message in messages])
        reply = self.replies.pop(0) if self.replies else answer_json()
        if isinstance(reply, Exception):
            raise reply
        if on_chunk is not None:
            for index in range(0, len(reply), 16):
                on_chunk(reply[index:index + 16])
        return reply

    def health_check(self):
        return HealthCheckResult(healthy=True, models=[self.config.model], response_time_ms=5)

    def list_models(self):
        return [self.config.model]


class FakeStream:
    """SDK-style stream; with ``stall`` it hangs after its items until closed."""

    def __init__(self, items, *, stall: bool = False) -> None:
        self.items = list(items)
        self.stall = stall
        self.closed = threading.Event()

    def __iter__(self):
        yield from self.items
        if self.stall:
            self.closed.wait(5)
            raise ConnectionError("stream closed")

    @property
    def text_stream(self):
        return iter(self)

    def close(self) -> None:
        self.closed.set()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove termwhat variables from the environment for every test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / ".termwhatrc"


@pytest.fixture
def store(config_path):
    return ConfigStore(config_path, environ={})


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def quiet_console(output):
    return Console(file=output, theme=_THEME, width=120, color_system=None, force_terminal=False)
