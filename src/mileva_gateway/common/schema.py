"""Pydantic request models and response envelope builders."""
from __future__ import annotations
import time
import uuid
from typing import Any, Literal

from pydantic import BaseModel

from mileva_gateway.common.errors import GatewayError
from mileva_gateway.common.prompts import approx_tokens


class GenerateIn(BaseModel):
    input: str | None = None


class CloudGenerateIn(BaseModel):
    """Either a bare ``input`` prompt or Gemini-native ``contents``."""

    input: str | None = None
    contents: list[dict[str, Any]] | None = None
    systemInstruction: dict[str, Any] | None = None
    generationConfig: dict[str, Any] | None = None


class ContentPart(BaseModel):
    type: str = "text"
    text: str | None = None


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str | list[ContentPart] | None = None

    def text(self) -> str:
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text or "" for p in self.content if p.type == "text")


class SamplingParams(BaseModel):
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stop: str | list[str] | None = None
    stream: bool | None = False

    def ollama_options(self) -> dict[str, Any]:
        """Sampling overrides in Ollama's ``options`` vocabulary."""
        options: dict[str, Any] = {}
        if self.temperature is not None:
            options["temperature"] = self.temperature
        if self.top_p is not None:
            options["top_p"] = self.top_p
        if self.max_tokens is not None:
            options["num_predict"] = self.max_tokens
        if self.stop is not None:
            options["stop"] = [self.stop] if isinstance(self.stop, str) else self.stop
        return options


class ChatCompletionIn(SamplingParams):
    model: str | None = None
    messages: list[ChatMessage] | None = None


class CompletionIn(SamplingParams):
    model: str | None = None
    prompt: str | None = None


def usage(prompt: str, text: str) -> dict[str, int]:
    prompt_tokens = approx_tokens(prompt)
    completion_tokens = approx_tokens(text)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def chat_completion(model: str, prompt: str, text: str) -> dict[str, Any]:
    return {
        "id": f"chatcmpl-{uuid.uuid4().hex}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
        "usage": usage(prompt, text),
    }


def text_completion(model: str, prompt: str, text: str) -> dict[str, Any]:
    return {
        "id": f"cmpl-{uuid.uuid4().hex}",
        "object": "text_completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {"text": text, "index": 0, "logprobs": None, "finish_reason": "stop"}
        ],
        "usage": usage(prompt, text),
    }


def model_list(ids: list[str], owned_by: str = "mileva") -> dict[str, Any]:
    created = int(time.time())
    return {
        "object": "list",
        "data": [
            {"id": model_id, "object": "model", "created": created, "owned_by": owned_by}
            for model_id in ids
        ],
    }


def openai_error(exc: GatewayError) -> dict[str, Any]:
    return {"error": {"message": exc.message, "type": exc.error_type, "code": exc.code}}
