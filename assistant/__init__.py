"""Personal assistant backend: an LLM chat turn with Google Calendar tools.

Architecture Overview
=====================

A chat turn is a **LangGraph** state machine with two model calls at most:

1. **initial_response** — the model sees the system prompt, prior turns,
   any injected context summaries and the new user message.  In calendar
   mode it is also offered the calendar tools (``tool_choice="auto"``).

2. **execute_tools** → **final_response** — only when the model asked for
   tools.  Calls run sequentially, every call gets a tool result (errors
   included), and a second model call without tools writes the reply.

Key Design Decisions
--------------------
- **LLM**: OpenAI ``gpt-4o-mini`` via LangChain by default; Anthropic via
  ``MODEL_PROVIDER=anthropic``.
- **Calendar**: Google Calendar v3 REST over ``httpx`` with retries.  No
  credentials (or expired ones) means simulated tool results, never errors.
- **Availability**: half-open overlap checks and a forward 30-minute scan
  over business hours (09:00–18:00), capped at 7 days.
- **Memory**: an in-memory, LRU-bounded conversation store per session.

Package Structure
-----------------
- ``assistant/agent.py`` — turn graph and ``ToolCallOrchestrator``
- ``assistant/config.py`` — configuration from environment variables
- ``assistant/prompts.py`` — assistant modes and system prompts
- ``assistant/server.py`` — FastAPI application
- ``assistant/main.py`` — CLI chat interface
- ``assistant/services/`` — availability search, Google Calendar client,
  conversation store, metrics
- ``assistant/tools/`` — tool registry and calendar tools
- ``assistant/api/`` — FastAPI routes and Pydantic schemas
"""
