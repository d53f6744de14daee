from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import API_KEY, FakeOllama
from mileva_gateway.common.errors import UpstreamError, UpstreamTimeoutError

CHAT = {"model": "gpt-3.5-turbo", "messages": [{"role": "user", "content": "hi"}]}


def test_chat_completion(client: TestClient, ollama: FakeOllama, auth: dict[str, str]) -> None:
    r = client.post("/v1/chat/completions", json=CHAT, headers=auth)
    assert r.status_code == 200
    data = r.json()
    assert data["object"] == "chat.completion"
    assert data["id"].startswith("chatcmpl-")
    assert data["model"] == "gpt-3.5-turbo"
    assert data["choices"][0]["message"] == {"role": "assistant", "content": "hello"}
    assert data["choices"][0]["finish_reason"] == "stop"
    assert data["usage"]["completion_tokens"] == 2
    assert data["usage"]["total_tokens"] == data["usage"]["prompt_tokens"] + 2

    call = ollama.calls[0]
    assert call["model"] == "llama3.2:1b"
    assert call["prompt"] == "Human: hi\n\nAssistant:"
    assert call["timeout_ms"] == 60_000


def test_chat_flattens_full_conversation(client: TestClient, ollama: FakeOllama, auth: dict[str, str]) -> None:
    body = {
        "model": "gpt-4",
        "messages": [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": [{"type": "text", "text": "Hi "}, {"type": "text", "text": "there"}]},
            {"role": "assistant", "content": "Hello."},
            {"role": "user", "content": "Bye"},
        ],
        "temperature": 0.1,
        "max_tokens": 20,
        "stop": "\n",
    }
    r = client.post("/v1/chat/completions", json=body, headers=auth)
    assert r.status_code == 200
    call = ollama.calls[0]
    assert call["model"] == "llama3.2:3b"
    assert call["timeout_ms"] == 120_000
    assert call["prompt"] == "system: Be brief.\n\nHuman: Hi there\n\nAssistant: Hello.\n\nHuman: Bye\n\nAssistant:"
    assert call["options"] == {"temperature": 0.1, "num_predict": 20, "stop": ["\n"]}


def test_chat_unknown_model_uses_default(client: TestClient, ollama: FakeOllama, auth: dict[str, str]) -> None:
    r = client.post("/v1/chat/completions", json={**CHAT, "model": "claude-something"}, headers=auth)
    assert r.status_code == 200
    assert r.json()["model"] == "claude-something"
    assert ollama.calls[0]["model"] == "llama3.2:1b"


@pytest.mark.parametrize(
    "body,code",
    [
        ({"messages": CHAT["messages"]}, "missing_model"),
        ({"model": "gpt-4"}, "missing_messages"),
        ({"model": "gpt-4", "messages": []}, "missing_messages"),
        ({**CHAT, "stream": True}, "stream_not_supported"),
    ],
)
def test_chat_rejects_bad_body(client: TestClient, ollama: FakeOllama, auth: dict[str, str], body: dict, code: str) -> None:
    r = client.post("/v1/chat/completions", json=body, headers=auth)
    assert r.status_code == 400
    error = r.json()["error"]
    assert error["type"] == "invalid_request_error"
    assert error["code"] == code
    assert ollama.calls == []


def test_chat_rejects_unknown_role(client: TestClient, ollama: FakeOllama, auth: dict[str, str]) -> None:
    body = {"model": "gpt-4", "messages": [{"role": "wizard", "content": "hi"}]}
    r = client.post("/v1/chat/completions", json=body, headers=auth)
    assert r.status_code == 400
    assert r.json()["error"]["type"] == "invalid_request_error"
    assert ollama.calls == []


def test_chat_timeout_envelope(client: TestClient, ollama: FakeOllama, auth: dict[str, str]) -> None:
    ollama.error = UpstreamTimeoutError("Request timeout - ollama took too long to respond")
    r = client.post("/v1/chat/completions", json=CHAT, headers=auth)
    assert r.status_code == 408
    assert r.json()["error"]["type"] == "timeout_error"
    assert len(ollama.calls) == 1


def test_chat_upstream_error_envelope(client: TestClient, ollama: FakeOllama, auth: dict[str, str]) -> None:
    ollama.error = UpstreamError("Ollama API error (500): boom", 500, "boom")
    r = client.post("/v1/chat/completions", json=CHAT, headers=auth)
    assert r.status_code == 500
    assert r.json()["error"] == {"message": "Ollama API error (500): boom", "type": "api_error", "code": "upstream_error"}


def test_completion(client: TestClient, ollama: FakeOllama, auth: dict[str, str]) -> None:
    r = client.post("/v1/completions", json={"model": "gpt-3.5-turbo-instruct", "prompt": "Once upon"}, headers=auth)
    assert r.status_code == 200
    data = r.json()
    assert data["object"] == "text_completion"
    assert data["choices"][0]["text"] == "hello"
    assert data["usage"] == {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}
    assert ollama.calls[0]["prompt"] == "Once upon"


def test_completion_requires_prompt_and_rejects_stream(client: TestClient, ollama: FakeOllama, auth: dict[str, str]) -> None:
    assert client.post("/v1/completions", json={"model": "gpt-4"}, headers=auth).status_code == 400
    r = client.post("/v1/completions", json={"model": "gpt-4", "prompt": "x", "stream": True}, headers=auth)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "stream_not_supported"
    assert ollama.calls == []


def test_models_list(client: TestClient, auth: dict[str, str]) -> None:
    r = client.get("/v1/models", headers=auth)
    assert r.status_code == 200
    data = r.json()
    assert data["object"] == "list"
    ids = [m["id"] for m in data["data"]]
    assert "gpt-3.5-turbo" in ids
    assert "llama3.2:3b" in ids
    assert all(m["object"] == "model" for m in data["data"])


def test_bearer_token_accepted(client: TestClient) -> None:
    r = client.get("/v1/models", headers={"Authorization": f"Bearer {API_KEY}"})
    assert r.status_code == 200


def test_bad_bearer_gets_openai_error(client: TestClient, ollama: FakeOllama) -> None:
    r = client.post("/v1/chat/completions", json=CHAT, headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 403
    assert r.json()["error"]["type"] == "authentication_error"
    assert ollama.calls == []
