"""
FastAPI application factory for the chat relay.

Routes, in match order:
  POST /api/chat   - relay the conversation to the inference backend
  *    /api/chat   - 405 Method not allowed
  *    /api/*      - 404 Not found
  *    everything else - static frontend assets
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from .backend import InferenceBackend
from .backends import create_backend
from .config import Settings, get_settings
from .relay import ChatRelay, RelayConfig


CHAT_PATH = "/api/chat"

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure logging with file and console handlers."""
    log_level = getattr(logging, settings.log_level.upper())

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # Console handler (always)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (if configured)
    if settings.log_path:
        try:
            log_path = Path(settings.log_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            root_logger.info("Logging to file: %s", log_path)
        except OSError as e:
            root_logger.error("Failed to set up file logging: %s", e)

    return logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    backend_factory: Optional[Callable[[], InferenceBackend]] = None,
    title: str = "LLM Chat Relay",
    version: str = "1.0.0",
) -> FastAPI:
    """
    Create the relay application.

    Args:
        settings: Service settings; read from the environment when omitted
        backend_factory: Callable that creates the InferenceBackend instance.
                         Called during app startup. Defaults to the backend
                         named by settings.backend.
        title: OpenAPI title
        version: OpenAPI version

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    if backend_factory is None:
        backend_factory = lambda: create_backend(settings)

    # Relay instance, set during startup
    relay: ChatRelay | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal relay

        logger.info("Chat relay starting up")

        backend = backend_factory()
        logger.info("Backend: %s", backend.backend_name)
        logger.info("Model: %s", settings.model_id)

        await backend.initialize()
        relay = ChatRelay(backend, RelayConfig.from_settings(settings))
        logger.info("Backend initialized")

        yield

        logger.info("Chat relay shutting down")
        relay = None
        await backend.shutdown()

    app = FastAPI(
        title=title,
        description="Streams chat completions from a hosted inference backend",
        version=version,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.post(CHAT_PATH)
    async def chat(request: Request):
        """Relay a conversation and stream the model output back."""
        if relay is None:
            return PlainTextResponse("Relay not initialized", status_code=503)
        return await relay.handle(request)

    # Plain ASGI endpoints (not functions) answer every method
    app.add_route(
        CHAT_PATH,
        PlainTextResponse("Method not allowed", status_code=405),
        include_in_schema=False,
    )
    app.add_route(
        "/api/{rest:path}",
        PlainTextResponse("Not found", status_code=404),
        include_in_schema=False,
    )

    assets_dir = Path(settings.assets_dir)
    if assets_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(assets_dir), html=True), name="assets")
    else:
        logger.warning("Assets directory not found, frontend disabled: %s", assets_dir)

    return app
