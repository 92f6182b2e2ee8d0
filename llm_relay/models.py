"""
Pydantic models for the chat endpoint.

The request body is parsed by hand (see relay.py) so that malformed input
ends up in the relay's error envelope instead of a framework 422.
"""

from typing import Literal, Optional
from pydantic import BaseModel


class ChatMessage(BaseModel):
    """A single message in a conversation."""
    role: Literal["system", "user", "assistant"]
    content: str


class ErrorResponse(BaseModel):
    """Response body for a failed POST /api/chat."""
    error: str = "Failed to process request"
    details: Optional[str] = None
