"""
Chat relay - forwards a conversation to the inference backend and streams
the model output back to the caller.

Every step returns either its value or a RelayFailure. `ChatRelay.handle`
stops at the first failure and answers with the JSON error envelope, so a
request gets exactly one of: a streaming 200 or a 500 error body.
"""

import logging
from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Any, Union

import anyio
import httpx
from pydantic import ValidationError
from starlette.concurrency import iterate_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse

from .backend import InferenceBackend
from .config import Settings
from .models import ChatMessage, ErrorResponse
from .results import (
    BodyWrapper,
    FailureKind,
    RawStream,
    RelayFailure,
    ResponseStream,
    StreamableResponse,
    TextWrapper,
    classify_result,
)


logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass(frozen=True)
class RelayConfig:
    """Fixed inference parameters applied to every request."""
    model_id: str
    system_prompt: str
    max_tokens: int
    stream: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "RelayConfig":
        return cls(
            model_id=settings.model_id,
            system_prompt=settings.system_prompt,
            max_tokens=settings.max_tokens,
            stream=settings.stream,
        )


def normalize_messages(messages: list[ChatMessage], system_prompt: str) -> list[ChatMessage]:
    """
    Make sure the conversation carries a system message.

    A conversation that already has one is returned as-is (copied);
    otherwise the default directive is put in front of it.
    """
    if any(msg.role == "system" for msg in messages):
        return list(messages)
    return [ChatMessage(role="system", content=system_prompt), *messages]


def _has_body(response: httpx.Response) -> bool:
    try:
        response.content
    except httpx.ResponseNotRead:
        return not (response.is_closed or response.is_stream_consumed)
    return True


class RelayBody:
    """
    Outbound body of a chat response.

    Chunks are passed through unchanged. Closing the body closes its source
    (and any upstream response behind it) even if no chunk was ever pulled.
    """

    def __init__(self, source):
        self._source = source
        self._iterator = None
        self._closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._iterator is None:
            if isinstance(self._source, AsyncIterable):
                self._iterator = self._source.__aiter__()
            else:
                self._iterator = iterate_in_threadpool(self._source)
        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise
        except Exception as e:
            logger.error("Error relaying chat stream: %s", e, exc_info=True)
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._iterator is not None and self._iterator is not self._source:
            iterator_aclose = getattr(self._iterator, "aclose", None)
            if iterator_aclose is not None:
                await iterator_aclose()

        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
        elif hasattr(self._source, "close"):
            self._source.close()


class RelayStreamingResponse(StreamingResponse):
    """StreamingResponse that closes its body once sending ends, however it ends."""

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self.body_iterator.aclose()


class ChatRelay:
    """Handles POST /api/chat."""

    def __init__(self, backend: InferenceBackend, config: RelayConfig):
        self.backend = backend
        self.config = config

    async def handle(self, request: Request) -> Response:
        """Turn a chat request into a streaming response or a JSON error."""
        messages = await self._parse(request)
        if isinstance(messages, RelayFailure):
            return self._failure_response(messages)

        conversation = normalize_messages(messages, self.config.system_prompt)

        result = await self._invoke(conversation)
        if isinstance(result, RelayFailure):
            return self._failure_response(result)

        body = self._open_body(result)
        if isinstance(body, RelayFailure):
            return self._failure_response(body)

        return RelayStreamingResponse(body, media_type=CONTENT_TYPE)

    async def _parse(self, request: Request) -> Union[list[ChatMessage], RelayFailure]:
        try:
            data = await request.json()
        except Exception as e:
            return RelayFailure.from_exception(FailureKind.MALFORMED_INPUT, e)

        raw = data.get("messages") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            raw = []

        try:
            return [ChatMessage.model_validate(item) for item in raw]
        except ValidationError as e:
            return RelayFailure.from_exception(FailureKind.MALFORMED_INPUT, e)

    async def _invoke(self, conversation: list[ChatMessage]) -> Any:
        inputs = {
            "messages": [msg.model_dump() for msg in conversation],
            "max_tokens": self.config.max_tokens,
        }

        logger.debug(
            "Chat request: model=%s, messages=%d, max_tokens=%d",
            self.config.model_id, len(conversation), self.config.max_tokens
        )

        try:
            return await self.backend.run(
                self.config.model_id,
                inputs,
                {"stream": self.config.stream},
            )
        except Exception as e:
            return RelayFailure.from_exception(FailureKind.BACKEND_FAILURE, e)

    def _open_body(self, result: Any) -> Union[RelayBody, RelayFailure]:
        shape = classify_result(result)

        if isinstance(shape, StreamableResponse):
            if not _has_body(shape.response):
                return RelayFailure(FailureKind.UNRECOGNIZED_RESULT, "AI response carried no body")
            return RelayBody(ResponseStream(shape.response))

        if isinstance(shape, RawStream):
            return RelayBody(shape.stream)

        if isinstance(shape, BodyWrapper):
            return RelayBody(shape.body)

        if isinstance(shape, TextWrapper):
            return RelayBody(iter([shape.response]))

        return RelayFailure(FailureKind.UNRECOGNIZED_RESULT, "AI returned an unexpected result format")

    def _failure_response(self, failure: RelayFailure) -> JSONResponse:
        logger.error(
            "Error processing chat request (%s): %s",
            failure.kind.value, failure.message, exc_info=failure.error
        )
        envelope = ErrorResponse(details=failure.message or None)
        return JSONResponse(
            status_code=500,
            content=envelope.model_dump(exclude_none=True),
        )
