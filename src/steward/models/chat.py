"""HTTP client for OpenAI-compatible chat completion endpoints (Ollama by default)."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Callable, Dict, Optional

from .llm_client import ModelClient, ModelClientError, ModelTransportError

__all__ = ["ChatClient", "DEFAULT_ENDPOINT"]

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:11434/v1/chat/completions"

Transport = Callable[[Dict[str, Any]], str]


class ChatClient(ModelClient):
    """Thin adapter around a chat completions endpoint.

    The default transport is a blocking ``urllib`` POST executed in a worker
    thread; tests and alternative backends inject ``transport`` instead.
    """

    def __init__(
        self,
        *,
        model: str,
        endpoint: str = DEFAULT_ENDPOINT,
        api_key: Optional[str] = None,
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> None:
        super().__init__(model=model, temperature=temperature, max_tokens=max_tokens)
        self._api_key = api_key or os.getenv("STEWARD_API_KEY") or os.getenv("OPENAI_API_KEY")
        self._endpoint = endpoint
        timeout_override = os.getenv("STEWARD_MODEL_TIMEOUT")
        if timeout_override:
            try:
                parsed = float(timeout_override)
                if parsed > 0:
                    timeout = parsed
            except ValueError:
                pass
        self._timeout = timeout
        self._transport = transport or self._http_transport

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send the request over the configured transport without blocking the loop."""
        try:
            return await asyncio.to_thread(self._transport, payload)
        except ModelTransportError:
            raise
        except (ConnectionError, TimeoutError, OSError) as error:
            raise ModelTransportError(f"Transport rejected the request: {error}") from error

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        """Default HTTP transport that POSTs JSON to the configured endpoint."""
        import urllib.error
        import urllib.request

        if os.getenv("STEWARD_DEBUG_PAYLOAD"):
            LOGGER.debug("chat request payload:\n%s", json.dumps(payload, indent=2, sort_keys=True))

        headers = {"Content-Type": "application/json", "User-Agent": "steward/0.1"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        request = urllib.request.Request(
            self._endpoint,
            data=json.dumps(payload).encode("utf-8"),
            headers=headers,
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
                status = getattr(response, "status", 200)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise ModelTransportError("Model response timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            if error.code >= 500 or error.code == 429:
                raise ModelTransportError(f"HTTP {error.code}: {message}") from error
            raise ModelClientError(f"HTTP {error.code}: {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise ModelTransportError(f"Failed to reach model endpoint: {error.reason}") from error

        if status >= 400:
            raise ModelTransportError(f"Unexpected HTTP status {status}")

        return raw.decode("utf-8")
