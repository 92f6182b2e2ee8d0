"""
Factory for creating inference backend instances.
"""
import logging

from ..backend import InferenceBackend
from ..config import Settings

logger = logging.getLogger(__name__)


def create_backend(settings: Settings) -> InferenceBackend:
    """
    Build the configured inference backend.

    The backend is determined by the BACKEND environment variable.
    Supported: "workers-ai", "openai", "ollama"
    """
    backend = settings.backend.lower()
    
    logger.info("Initializing inference backend: %s", backend)
    
    if backend == "workers-ai":
        from .workers_ai import WorkersAIBackend
        return WorkersAIBackend(
            account_id=settings.cloudflare_account_id,
            api_token=settings.cloudflare_api_token,
            api_base=settings.cloudflare_api_base,
            timeout=settings.backend_timeout,
        )
    
    elif backend == "openai":
        from .openai_backend import OpenAIBackend
        return OpenAIBackend(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.backend_timeout,
        )
    
    elif backend == "ollama":
        from .ollama import OllamaBackend
        return OllamaBackend(
            host=settings.ollama_host,
            timeout=settings.backend_timeout,
        )
    
    else:
        raise ValueError(
            f"Unknown inference backend: {backend}. "
            f"Supported backends: workers-ai, openai, ollama"
        )
