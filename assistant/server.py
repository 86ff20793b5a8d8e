"""FastAPI server for the personal assistant.

Run with:
    uv run uvicorn assistant.server:app --reload --host 0.0.0.0 --port 3001
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from assistant.agent import ToolCallOrchestrator
from assistant.api.routes import router
from assistant.config import CORS_ORIGINS, MODEL_NAME, MODEL_PROVIDER, SERVER_HOST, SERVER_PORT
from assistant.services.conversation_store import ConversationStore
from assistant.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create the orchestrator and the conversation store once per process."""
    logger.info("Starting assistant (%s / %s)…", MODEL_PROVIDER, MODEL_NAME)
    application.state.orchestrator = ToolCallOrchestrator()
    application.state.store = ConversationStore()
    logger.info("Assistant ready.")
    yield
    metrics.flush()


app = FastAPI(
    title="Personal Assistant",
    description="Chat assistant with optional Google Calendar scheduling tools.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (echoed as ``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Personal Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "assistant.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
