"""
Ollama backend implementation.

Streaming runs return {"body": <byte stream>, "model": name}; the newline
delimited JSON produced by Ollama is relayed as-is.
"""

import logging
from typing import Any, Optional

import httpx

from ..backend import BackendError, InferenceBackend
from ..results import ResponseStream


logger = logging.getLogger(__name__)


class OllamaBackend(InferenceBackend):
    """Inference backend using Ollama for local models."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.backend_name = "ollama"
        self._ollama_host = host.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def initialize(self) -> None:
        """Initialize the Ollama client and check that Ollama answers."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)

        try:
            response = await self._client.get(f"{self._ollama_host}/api/tags", timeout=5.0)
            response.raise_for_status()
            logger.info("Ollama is ready at %s", self._ollama_host)
        except httpx.HTTPError as e:
            logger.warning("Ollama not reachable at %s: %s (will retry on requests)", self._ollama_host, e)

    async def shutdown(self) -> None:
        """Clean up resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def run(self, model: str, inputs: dict, options: dict) -> Any:
        """Send a chat request to Ollama."""
        if self._client is None:
            raise RuntimeError("Ollama client not initialized")

        stream = bool(options.get("stream", False))
        payload = {
            "model": model,
            "messages": inputs["messages"],
            "stream": stream,
        }
        if inputs.get("max_tokens") is not None:
            payload["options"] = {"num_predict": inputs["max_tokens"]}

        request = self._client.build_request(
            "POST",
            f"{self._ollama_host}/api/chat",
            json=payload,
        )
        response = await self._client.send(request, stream=stream)

        if response.status_code >= 400:
            error_body = await response.aread()
            await response.aclose()
            raise BackendError(
                f"Ollama error: HTTP {response.status_code}: "
                f"{error_body.decode('utf-8', errors='replace')[:200]}",
                status_code=response.status_code,
            )

        if stream:
            return {"body": ResponseStream(response), "model": model}

        data = response.json()
        return {"response": data.get("message", {}).get("content", "")}
