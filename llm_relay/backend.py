"""
Abstract base class for inference backends.

Implementations must subclass InferenceBackend and implement all abstract methods.
The relay only ever calls `run`; the server drives initialize/shutdown from
the application lifespan.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class BackendError(Exception):
    """Raised when the inference backend rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InferenceBackend(ABC):
    """
    Abstract interface that all inference runtimes must satisfy.

    Implementations should:
    1. Set backend_name in __init__
    2. Implement all abstract methods
    3. Handle their own client/connection lifecycle in initialize/shutdown
    """

    backend_name: str  # e.g., "workers-ai", "openai"

    @abstractmethod
    async def initialize(self) -> None:
        """
        Called on application startup.

        Set up clients, establish connections, etc.
        """
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """
        Called on application shutdown.

        Clean up resources, close connections, etc.
        """
        pass

    @abstractmethod
    async def run(self, model: str, inputs: dict, options: dict) -> Any:
        """
        Run a model over a conversation.

        Args:
            model: Model identifier understood by the runtime
            inputs: {"messages": [{"role": str, "content": str}, ...], "max_tokens": int}
            options: {"stream": bool}

        Returns:
            One of the shapes understood by results.classify_result: an
            httpx.Response, a byte/text stream, an object with a `body`
            stream, or an object with a `response` string

        Raises:
            Exception on failure (will be caught and converted to HTTP 500)
        """
        pass
