"""
OpenAI backend implementation.

Streaming runs return a DeltaStream over the completion's text deltas.
"""

import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from ..backend import InferenceBackend


logger = logging.getLogger(__name__)


class DeltaStream:
    """
    Text deltas of a streamed chat completion.

    aclose() closes the SDK stream (and its HTTP response) whether or not
    iteration ever started.
    """

    def __init__(self, chunks):
        self._chunks = chunks
        self._iterator = None

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if self._iterator is None:
            self._iterator = self._chunks.__aiter__()
        while True:
            try:
                chunk = await self._iterator.__anext__()
            except StopAsyncIteration:
                await self.aclose()
                raise
            if chunk.choices and chunk.choices[0].delta.content:
                return chunk.choices[0].delta.content

    async def aclose(self) -> None:
        await self._chunks.close()


class OpenAIBackend(InferenceBackend):
    """Inference backend using OpenAI's chat completions API."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.backend_name = "openai"
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._client = client

    async def initialize(self) -> None:
        """Initialize the OpenAI client."""
        if self._client is not None:
            return
        if not self._api_key:
            logger.error("OPENAI_API_KEY not set!")
            return

        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._timeout,
        )
        logger.info("OpenAI client initialized")

    async def shutdown(self) -> None:
        """Clean up resources."""
        if self._client:
            await self._client.close()
            self._client = None

    async def run(self, model: str, inputs: dict, options: dict) -> Any:
        """Send a chat completion request to OpenAI."""
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        stream = bool(options.get("stream", False))
        params = {
            "model": model,
            "messages": inputs["messages"],
            "stream": stream,
        }
        if inputs.get("max_tokens") is not None:
            params["max_tokens"] = inputs["max_tokens"]

        completion = await self._client.chat.completions.create(**params)

        if stream:
            return DeltaStream(completion)

        content = completion.choices[0].message.content or ""
        return {"response": content}
