"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CalendarCredentialsIn(BaseModel):
    """Google OAuth tokens for the current user, as issued by the auth provider."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expires_at: datetime | None = Field(None, description="Access token expiry (ISO 8601)")
    expiry_date: int | None = Field(None, description="Access token expiry (epoch milliseconds)")


class ChatRequest(BaseModel):
    """Incoming chat message from the frontend."""

    message: str = Field(..., min_length=1, max_length=4000, description="The user's message")
    session_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Unique session identifier for conversation continuity",
    )
    mode: str = Field("general", description="Assistant mode: 'general' or 'calendar'")
    system_prompt: str | None = Field(None, max_length=8000, description="Overrides the mode's prompt")
    context_summaries: list[str] = Field(
        default_factory=list, description="Extra context injected before the user message",
    )
    calendar_credentials: CalendarCredentialsIn | None = None


class ToolCallSummary(BaseModel):
    name: str
    success: bool
    simulated: bool = False


class ChatResponse(BaseModel):
    """Response from the assistant."""

    reply: str = Field(..., description="The assistant's response message")
    session_id: str = Field(..., description="The session ID for this conversation")
    mode: str
    tool_calls: list[ToolCallSummary] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "personal-assistant"
    model_provider: str
    sessions: int = 0
    history_bytes: int = 0
