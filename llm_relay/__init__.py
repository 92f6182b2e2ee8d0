"""
LLM Chat Relay - HTTP edge for a hosted inference backend.

This package provides:
- The chat relay (system-message injection, backend invocation, result-shape
  detection, streaming relay and error containment)
- The abstract InferenceBackend interface plus Workers AI, OpenAI and Ollama
  implementations
- A FastAPI app factory with the /api routes and the static frontend mount
"""

from .backend import BackendError, InferenceBackend
from .config import Settings, get_settings
from .models import ChatMessage, ErrorResponse
from .relay import ChatRelay, RelayBody, RelayConfig, normalize_messages
from .results import (
    BodyWrapper,
    FailureKind,
    InferenceResult,
    RawStream,
    RelayFailure,
    ResponseStream,
    StreamableResponse,
    TextWrapper,
    classify_result,
)
from .server import create_app

__all__ = [
    # API models
    "ChatMessage",
    "ErrorResponse",
    # Backend interface
    "InferenceBackend",
    "BackendError",
    # Result shapes
    "InferenceResult",
    "StreamableResponse",
    "RawStream",
    "BodyWrapper",
    "TextWrapper",
    "ResponseStream",
    "classify_result",
    "FailureKind",
    "RelayFailure",
    # Relay
    "ChatRelay",
    "RelayBody",
    "RelayConfig",
    "normalize_messages",
    # Config
    "Settings",
    "get_settings",
    # App factory
    "create_app",
]
