"""Pydantic models for the public API."""

from .chat import (
    ChatRequest,
    ChatResponse,
    ConversationMessage,
    ErrorResponse,
    SessionRequest,
    SessionResponse,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ConversationMessage",
    "ErrorResponse",
    "SessionRequest",
    "SessionResponse",
]
