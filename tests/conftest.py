"""Test configuration and fixtures."""

import json
from collections.abc import Iterable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from llm_openai_bridge.config import Settings
from llm_openai_bridge.main import create_app
from llm_openai_bridge.upstream import FragmentStream, Message, ModelSelector, ResponseHandle


class FakeModel:
    """In-memory upstream model. Token count is the text length."""

    def __init__(
        self,
        model_id: str,
        family: str | None = None,
        vendor: str = "copilot",
        fragments: Iterable[str] = ("pong",),
    ) -> None:
        self.id = model_id
        self.family = family or model_id
        self.name = model_id.upper()
        self.vendor = vendor
        self.version = "1.0"
        self.max_input_tokens = 128000
        self.fragments = list(fragments)
        self.fail_after: int | None = None
        self.send_error: Exception | None = None
        self.return_none = False
        self.sent: list[tuple[list[Message], dict]] = []

    async def send(self, messages, options=None, cancellation=None):
        self.sent.append((list(messages), dict(options or {})))
        if self.send_error is not None:
            raise self.send_error
        if self.return_none:
            return None
        return ResponseHandle(text=FragmentStream(self._fragments()))

    async def _fragments(self):
        for index, fragment in enumerate(self.fragments):
            if self.fail_after is not None and index == self.fail_after:
                raise RuntimeError("upstream connection dropped")
            yield fragment
        if self.fail_after is not None and self.fail_after >= len(self.fragments):
            raise RuntimeError("upstream connection dropped")

    async def count_tokens(self, text: str) -> int:
        return len(text)

    @property
    def last_messages(self) -> list[Message]:
        return self.sent[-1][0]

    @property
    def last_options(self) -> dict:
        return self.sent[-1][1]


class FakeProvider:
    """Model provider over a fixed list of ``FakeModel`` instances."""

    def __init__(self, models: Iterable[FakeModel] = ()) -> None:
        self.models = list(models)
        self.selectors: list[ModelSelector] = []
        self.error: Exception | None = None

    async def select_models(self, selector: ModelSelector):
        self.selectors.append(selector)
        if self.error is not None:
            raise self.error
        return [model for model in self.models if selector.matches(model)]


def parse_sse(body: str) -> list[tuple[str | None, str]]:
    """Split an SSE body into ``(event, data)`` pairs."""
    frames = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        event = None
        data = []
        for line in block.split("\n"):
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data.append(line[len("data: "):])
        frames.append((event, "\n".join(data)))
    return frames


def sse_payloads(body: str) -> list[dict]:
    return [json.loads(data) for _, data in parse_sse(body) if data != "[DONE]"]


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any ``.env`` file."""
    return Settings(_env_file=None, default_model="gpt-4", recovery_delay=0)


@pytest.fixture
def gpt4() -> FakeModel:
    return FakeModel("gpt-4", fragments=["Hi", " there"])


@pytest.fixture
def codex() -> FakeModel:
    return FakeModel("gpt-5-codex", fragments=["pong"])


@pytest.fixture
def provider(gpt4: FakeModel, codex: FakeModel) -> FakeProvider:
    return FakeProvider([gpt4, codex])


@pytest.fixture
def app(settings: Settings, provider: FakeProvider) -> FastAPI:
    return create_app(settings, provider=provider)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(app)
