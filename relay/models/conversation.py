"""HTTP request and response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from relay.models.messages import DEFAULT_THREAD_TITLE, Message, UserEvent


class StreamRequest(UserEvent):
    """Request model for the streaming endpoint."""

    mode: Literal["agent", "assistant"] = "agent"


class ThreadCreateRequest(BaseModel):
    title: str = DEFAULT_THREAD_TITLE


class ThreadUpdateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class Pagination(BaseModel):
    total: int
    limit: int | None = None
    offset: int = 0
    has_more: bool


class MessagesResponse(BaseModel):
    """Response model for a page of thread messages."""

    messages: list[Message]
    pagination: Pagination


class DeleteResponse(BaseModel):
    success: bool


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
