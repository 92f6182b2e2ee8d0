"""
Cloudflare Workers AI backend.

Calls the Workers AI REST API. Streaming runs hand back the live upstream
response so its server-sent event body is relayed without being read here.
"""

import logging
from typing import Any, Optional

import httpx

from ..backend import BackendError, InferenceBackend


logger = logging.getLogger(__name__)


class WorkersAIBackend(InferenceBackend):
    """Inference backend using the Cloudflare Workers AI REST API."""

    def __init__(
        self,
        account_id: str,
        api_token: str,
        api_base: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.backend_name = "workers-ai"
        self._account_id = account_id
        self._api_token = api_token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if not self._account_id or not self._api_token:
            logger.error("CLOUDFLARE_ACCOUNT_ID / CLOUDFLARE_API_TOKEN not set!")

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        logger.info("Workers AI client initialized: %s", self._api_base)

    async def shutdown(self) -> None:
        """Clean up resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _run_url(self, model: str) -> str:
        return f"{self._api_base}/accounts/{self._account_id}/ai/run/{model}"

    async def run(self, model: str, inputs: dict, options: dict) -> Any:
        """Run a model; streaming returns the open httpx.Response."""
        if self._client is None:
            raise RuntimeError("Workers AI client not initialized")

        stream = bool(options.get("stream", False))
        payload = {**inputs, "stream": stream}

        logger.debug(
            "Workers AI request: model=%s, messages=%d, stream=%s",
            model, len(inputs.get("messages", [])), stream
        )

        request = self._client.build_request(
            "POST",
            self._run_url(model),
            json=payload,
            headers={"Authorization": f"Bearer {self._api_token}"},
        )
        response = await self._client.send(request, stream=stream)

        if response.status_code >= 400:
            error_body = await response.aread()
            await response.aclose()
            raise BackendError(
                f"Workers AI error: HTTP {response.status_code}: "
                f"{error_body.decode('utf-8', errors='replace')[:200]}",
                status_code=response.status_code,
            )

        if stream:
            return response

        data = response.json()
        if not data.get("success", True):
            raise BackendError(f"Workers AI error: {data.get('errors')}")
        return data.get("result", data)
