"""
Relay service configuration.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings from environment variables."""
    
    # Server
    host: str = "0.0.0.0"
    port: int = 8787
    
    # Logging
    log_level: str = "info"
    log_path: str = ""  # e.g. /app/logs/llm-relay.log
    
    # Static frontend served for every non-API path
    assets_dir: str = "public"
    
    # Inference
    model_id: str = "@cf/meta/llama-3.3-70b-instruct-fp8-fast"
    system_prompt: str = (
        "You are a helpful, friendly assistant. "
        "Provide concise and accurate responses."
    )
    max_tokens: int = 1024
    stream: bool = True
    
    # Backend selection: "workers-ai", "openai" or "ollama"
    backend: str = "workers-ai"
    backend_timeout: float = 120.0  # inference calls can be slow
    
    # Cloudflare Workers AI
    cloudflare_account_id: str = ""
    cloudflare_api_token: str = ""
    cloudflare_api_base: str = "https://api.cloudflare.com/client/v4"
    
    # OpenAI
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None
    
    # Ollama
    ollama_host: str = "http://localhost:11434"
    
    class Config:
        env_prefix = ""
        case_sensitive = False
        protected_namespaces = ()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
