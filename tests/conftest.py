from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from mileva_gateway.common.errors import GatewayError
from mileva_gateway.common.settings import Settings
from mileva_gateway.serve.fastapi_app import create_app

API_KEY = "test-secret"


class FakeOllama:
    """Records every call; returns ``reply`` or raises ``error``."""

    base_url = "http://ollama.test"

    def __init__(self, reply: str = "hello", error: GatewayError | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.models: list[dict[str, Any]] = [{"name": "llama3.2:1b"}]

    def generate(self, model: str, prompt: str, timeout_ms: int = 60_000, options: dict[str, Any] | None = None) -> str:
        self.calls.append({"model": model, "prompt": prompt, "timeout_ms": timeout_ms, "options": options})
        if self.error is not None:
            raise self.error
        return self.reply

    def list_models(self, timeout_ms: int = 30_000) -> list[dict[str, Any]]:
        self.calls.append({"tags": True, "timeout_ms": timeout_ms})
        if self.error is not None:
            raise self.error
        return self.models


class FakeGemini:
    def __init__(self, reply: str = "from gemini", error: GatewayError | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def generate(self, model: str, contents: list[dict[str, Any]], timeout_ms: int = 120_000, extra: dict[str, Any] | None = None) -> str:
        self.calls.append({"model": model, "contents": contents, "timeout_ms": timeout_ms, "extra": extra})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture()
def settings() -> Settings:
    return Settings(api_key=API_KEY)


@pytest.fixture()
def ollama() -> FakeOllama:
    return FakeOllama()


@pytest.fixture()
def gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture()
def client(settings: Settings, ollama: FakeOllama, gemini: FakeGemini) -> TestClient:
    return TestClient(create_app(settings, ollama=ollama, gemini=gemini))


@pytest.fixture()
def auth() -> dict[str, str]:
    return {"x-api-key": API_KEY}
