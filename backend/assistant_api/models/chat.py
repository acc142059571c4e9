"""
Request and response models for the public endpoints.
"""
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

MESSAGE_MAX_CHARS = 12_000
CONTEXT_MAX_CHARS = 4_000
HISTORY_CONTENT_MAX_CHARS = 2_000
HISTORY_MAX_ENTRIES = 20


class ConversationMessage(BaseModel):
    """One prior turn, supplied by the caller."""

    role: Literal["user", "model"]
    content: str = ""
    timestamp: Optional[Union[int, float, str]] = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value):
        # Anything that is not the user is treated as the model.
        if isinstance(value, str) and value.strip().lower() == "user":
            return "user"
        return "model"

    @field_validator("content", mode="before")
    @classmethod
    def truncate_content(cls, value):
        if value is None:
            return ""
        return str(value)[:HISTORY_CONTENT_MAX_CHARS]


class ChatRequest(BaseModel):
    # Optional here so a missing message maps to input_invalid instead of a 422.
    message: Optional[str] = None
    history: List[ConversationMessage] = Field(default_factory=list)
    context: Optional[str] = None

    @field_validator("message", mode="before")
    @classmethod
    def truncate_message(cls, value):
        if value is None:
            return None
        return str(value)[:MESSAGE_MAX_CHARS]

    @field_validator("context", mode="before")
    @classmethod
    def truncate_context(cls, value):
        if value is None:
            return None
        return str(value)[:CONTEXT_MAX_CHARS]

    @field_validator("history", mode="before")
    @classmethod
    def keep_recent_history(cls, value):
        if not value:
            return []
        return list(value)[-HISTORY_MAX_ENTRIES:]


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    job_id: Optional[str] = Field(default=None, alias="jobId")
    timestamp: int = Field(..., description="Epoch milliseconds")


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    status_code: int
    trace_id: Optional[str] = None


class SessionRequest(BaseModel):
    verification_token: Optional[str] = Field(default=None, alias="turnstileToken")

    model_config = ConfigDict(populate_by_name=True)


class SessionResponse(BaseModel):
    token: str
    expires_at: int = Field(..., alias="expiresAt", description="Epoch milliseconds")
    bypass: bool = False
    dev: bool = False

    model_config = ConfigDict(populate_by_name=True)
