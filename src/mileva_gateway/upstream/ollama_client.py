"""Client for the local Ollama HTTP API.

Each call makes exactly one attempt; nothing is retried. The timeout is a
deadline for the whole call, body included.
"""
from __future__ import annotations
import json
import logging
from typing import Any

import httpx

from mileva_gateway.common.errors import TransportError, UpstreamError, UpstreamTimeoutError
from mileva_gateway.common.logging_setup import preview
from mileva_gateway.upstream.deadline import Deadline, run_with_deadline

LOGGER = logging.getLogger("mileva.upstream.ollama")

DEFAULT_OPTIONS = {"temperature": 0.7, "top_p": 0.9}
TIMEOUT_MESSAGE = "Request timeout - ollama took too long to respond"


class OllamaClient:
    def __init__(self, base_url: str, transport: httpx.BaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self, deadline: Deadline) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=deadline.httpx_timeout(),
            transport=self._transport,
        )

    def generate(
        self,
        model: str,
        prompt: str,
        timeout_ms: int = 60_000,
        options: dict[str, Any] | None = None,
    ) -> str:
        """
        Run one non-streaming generation.

        Args:
            model: Local model id, e.g. ``llama3.2:1b``.
            prompt: Prompt text.
            timeout_ms: Budget for the whole call.
            options: Sampling overrides merged over the defaults.

        Returns:
            The generated text.

        Raises:
            UpstreamTimeoutError: The budget elapsed.
            UpstreamError: Ollama answered with a non-success status.
            TransportError: Ollama could not be reached.
        """
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {**DEFAULT_OPTIONS, **(options or {})},
        }
        LOGGER.info("Calling ollama for model %s (timeout %sms)", model, timeout_ms)
        LOGGER.debug("Prompt: %s", preview(prompt))
        data = self._request("POST", "/api/generate", timeout_ms, json=payload)
        LOGGER.info("Ollama response received for %s", model)
        return str(data.get("response", ""))

    def list_models(self, timeout_ms: int = 30_000) -> list[dict[str, Any]]:
        """Models installed on the Ollama server (``/api/tags``)."""
        data = self._request("GET", "/api/tags", timeout_ms)
        return list(data.get("models") or [])

    def _request(self, method: str, path: str, timeout_ms: int, **kwargs: Any) -> dict[str, Any]:
        deadline = Deadline(timeout_ms)
        return run_with_deadline(
            lambda: self._send(method, path, deadline, **kwargs),
            deadline,
            TIMEOUT_MESSAGE,
        )

    def _send(self, method: str, path: str, deadline: Deadline, **kwargs: Any) -> dict[str, Any]:
        try:
            with self._client(deadline) as client:
                with client.stream(method, path, **kwargs) as r:
                    body = bytearray()
                    for chunk in r.iter_bytes():
                        if deadline.expired():
                            raise UpstreamTimeoutError(TIMEOUT_MESSAGE)
                        body.extend(chunk)
                    text = body.decode("utf-8", errors="replace")
                    if r.is_error:
                        raise UpstreamError(
                            f"Ollama API error ({r.status_code}): {text}",
                            upstream_status=r.status_code,
                            body=text,
                        )
                    data = json.loads(text)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(TIMEOUT_MESSAGE) from e
        except httpx.TransportError as e:
            raise TransportError(f"Could not reach ollama at {self.base_url}: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"Malformed ollama response: {e}", upstream_status=200) from e
        if not isinstance(data, dict):
            raise UpstreamError("Malformed ollama response: expected a JSON object", upstream_status=200, body=text)
        return data
