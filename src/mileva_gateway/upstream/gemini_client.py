"""Client for the Gemini ``streamGenerateContent`` API.

The stream is consumed internally and joined into one string; callers never
see partial output.
"""
from __future__ import annotations
import json
import logging
from typing import Any

import httpx

from mileva_gateway.common.errors import TransportError, UpstreamError, UpstreamTimeoutError
from mileva_gateway.upstream.deadline import Deadline, run_with_deadline

LOGGER = logging.getLogger("mileva.upstream.gemini")

TIMEOUT_MESSAGE = "Request timeout - gemini took too long to respond"


def prompt_contents(prompt: str) -> list[dict[str, Any]]:
    """Wrap a bare prompt in Gemini's ``contents`` structure."""
    return [{"role": "user", "parts": [{"text": prompt}]}]


def chunk_text(data: str) -> str:
    """
    Text carried by one SSE ``data:`` payload.

    Raises:
        UpstreamError: The payload is not a JSON object, or it reports an error.
    """
    chunk = json.loads(data)
    if not isinstance(chunk, dict):
        raise UpstreamError("Malformed gemini stream: chunk is not a JSON object", upstream_status=200, body=data)
    if "error" in chunk:
        error = chunk["error"]
        status = error.get("code") if isinstance(error, dict) else None
        raise UpstreamError(
            f"Gemini API error in stream: {json.dumps(error)}",
            upstream_status=status if isinstance(status, int) else 500,
            body=data,
        )

    parts: list[str] = []
    for candidate in chunk.get("candidates") or []:
        if not isinstance(candidate, dict):
            continue
        content = candidate.get("content") or {}
        for part in content.get("parts") or []:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
    return "".join(parts)


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def generate(
        self,
        model: str,
        contents: list[dict[str, Any]],
        timeout_ms: int = 120_000,
        extra: dict[str, Any] | None = None,
    ) -> str:
        """
        Stream a generation and return the concatenated text.

        Args:
            model: Gemini model id, e.g. ``gemini-1.5-flash``.
            contents: Gemini-native ``contents`` list.
            timeout_ms: Budget for the whole stream.
            extra: Additional top-level request fields
                (``systemInstruction``, ``generationConfig``).
        """
        payload = {"contents": contents, **(extra or {})}
        deadline = Deadline(timeout_ms)
        LOGGER.info("Calling gemini model %s (timeout %sms)", model, timeout_ms)
        pieces = run_with_deadline(lambda: self._stream(model, payload, deadline), deadline, TIMEOUT_MESSAGE)
        LOGGER.info("Gemini stream finished for %s (%d chunks)", model, len(pieces))
        return "".join(pieces)

    def _stream(self, model: str, payload: dict[str, Any], deadline: Deadline) -> list[str]:
        path = f"/v1beta/models/{model}:streamGenerateContent"
        pieces: list[str] = []
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=deadline.httpx_timeout(),
                transport=self._transport,
            ) as client:
                with client.stream(
                    "POST",
                    path,
                    params={"alt": "sse"},
                    headers={"x-goog-api-key": self.api_key},
                    json=payload,
                ) as r:
                    if r.is_error:
                        body = r.read().decode("utf-8", errors="replace")
                        raise UpstreamError(
                            f"Gemini API error ({r.status_code}): {body}",
                            upstream_status=r.status_code,
                            body=body,
                        )
                    for line in r.iter_lines():
                        if deadline.expired():
                            raise UpstreamTimeoutError(TIMEOUT_MESSAGE)
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data:
                            pieces.append(chunk_text(data))
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(TIMEOUT_MESSAGE) from e
        except httpx.TransportError as e:
            raise TransportError(f"Could not reach gemini: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"Malformed gemini stream: {e}", upstream_status=200) from e
        return pieces
