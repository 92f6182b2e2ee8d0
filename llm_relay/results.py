"""
Result shapes returned by inference backends, and the relay's step results.

A backend may hand back its output in several forms. Each one is modelled
as a variant below; `classify_result` maps whatever a backend returned onto
one of them so the relay can match on the variant instead of inspecting fields.
"""

from collections.abc import AsyncIterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

import httpx


@dataclass(frozen=True)
class StreamableResponse:
    """A complete HTTP response whose body is the model output stream."""
    response: httpx.Response


@dataclass(frozen=True)
class RawStream:
    """A bare stream of byte (or text) chunks."""
    stream: Any  # AsyncIterable or Iterator of bytes | str


@dataclass(frozen=True)
class BodyWrapper:
    """A structured result whose `body` field is the output stream."""
    body: Any  # AsyncIterable or Iterator of bytes | str


@dataclass(frozen=True)
class TextWrapper:
    """A structured result whose `response` field is the full output text."""
    response: str


InferenceResult = Union[StreamableResponse, RawStream, BodyWrapper, TextWrapper]


class ResponseStream:
    """
    Byte stream over an open httpx.Response.

    aclose() releases the response whether or not iteration ever started.
    """

    def __init__(self, response: httpx.Response):
        self.response = response
        self._chunks = None

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self._chunks is None:
            self._chunks = self.response.aiter_bytes()
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._chunks is not None:
            await self._chunks.aclose()
        await self.response.aclose()


class FailureKind(str, Enum):
    MALFORMED_INPUT = "malformed_input"
    BACKEND_FAILURE = "backend_failure"
    UNRECOGNIZED_RESULT = "unrecognized_result"


@dataclass(frozen=True)
class RelayFailure:
    """Failed outcome of one relay step."""
    kind: FailureKind
    message: Optional[str] = None
    error: Optional[BaseException] = field(default=None, compare=False)

    @classmethod
    def from_exception(cls, kind: FailureKind, error: BaseException) -> "RelayFailure":
        return cls(kind=kind, message=str(error), error=error)


def is_stream(value: Any) -> bool:
    """True for async iterables and iterators that are not plain data."""
    if isinstance(value, (str, bytes, bytearray, Mapping)):
        return False
    return isinstance(value, (AsyncIterable, Iterator))


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def classify_result(value: Any) -> Optional[InferenceResult]:
    """
    Map a backend return value onto a result variant.

    Checks run from the richest shape to the poorest; an already-materialized
    `response` string is the last resort since it cannot stream incrementally.

    Returns:
        The matching variant, or None when the shape is unrecognized
    """
    if isinstance(value, (StreamableResponse, RawStream, BodyWrapper, TextWrapper)):
        return value

    if isinstance(value, httpx.Response):
        return StreamableResponse(response=value)

    if is_stream(value):
        return RawStream(stream=value)

    if value is None:
        return None

    body = _field(value, "body")
    if body is not None and is_stream(body):
        return BodyWrapper(body=body)

    text = _field(value, "response")
    if isinstance(text, str):
        return TextWrapper(response=text)

    return None
