"""
Inference backend implementations.

Each backend returns one of the result shapes in llm_relay.results; which
one depends on the runtime and on whether streaming was requested.
"""
from .factory import create_backend

__all__ = ["create_backend"]
