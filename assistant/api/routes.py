"""FastAPI route definitions for the personal assistant API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from assistant.agent import ChatTurn, ModelCallFailed, ToolCallOrchestrator
from assistant.api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ToolCallSummary,
)
from assistant.config import MODEL_PROVIDER
from assistant.prompts import get_mode, get_system_prompt
from assistant.services.calendar_client import CalendarCredentials
from assistant.services.conversation_store import ConversationStore
from assistant.tools.calendar import build_calendar_registry

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_orchestrator(request: Request) -> ToolCallOrchestrator:
    """Retrieve the orchestrator the lifespan stored in app state."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return orchestrator


def _get_store(request: Request) -> ConversationStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return store


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check(http_request: Request):
    """Health check endpoint."""
    store = getattr(http_request.app.state, "store", None)
    return HealthResponse(
        model_provider=MODEL_PROVIDER,
        sessions=store.session_count if store is not None else 0,
        history_bytes=store.current_bytes if store is not None else 0,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the assistant and get its reply.

    History is kept per ``session_id``.  In calendar mode the calendar
    tools are offered to the model; without ``calendar_credentials`` they
    answer with simulated results.
    """
    orchestrator = _get_orchestrator(http_request)
    store = _get_store(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    mode = get_mode(request.mode)
    registry = None
    if mode.tools_enabled:
        credentials = (
            CalendarCredentials.from_dict(request.calendar_credentials.model_dump())
            if request.calendar_credentials
            else None
        )
        registry = build_calendar_registry(credentials)

    turn = ChatTurn(
        message=request.message,
        system_prompt=get_system_prompt(mode.mode_id, request.system_prompt),
        history=store.get_history(request.session_id),
        context_summaries=request.context_summaries,
        tools_enabled=mode.tools_enabled,
    )

    try:
        result = await orchestrator.run_turn(turn, registry)
    except ModelCallFailed as e:
        logger.error("[%s] Model call failed (%s)", request_id, e.stage)
        raise HTTPException(
            status_code=502,
            detail="The language model is unavailable right now. Please try again.",
        ) from e
    except Exception as e:
        # Full traceback stays server-side
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    store.append(
        request.session_id,
        {"role": "user", "content": request.message},
        {"role": "assistant", "content": result.reply},
    )

    return ChatResponse(
        reply=result.reply,
        session_id=request.session_id,
        mode=mode.mode_id,
        tool_calls=[
            ToolCallSummary(
                name=record["name"] or "",
                success=bool(record["result"].get("success")),
                simulated=bool(record["result"].get("simulated")),
            )
            for record in result.tool_results
        ],
    )


@router.delete("/conversations/{session_id}")
async def delete_conversation(session_id: str, http_request: Request):
    """Forget a session's history."""
    store = _get_store(http_request)
    if not store.clear(session_id):
        raise HTTPException(status_code=404, detail="Conversation not found.")
    return {"success": True, "session_id": session_id}
