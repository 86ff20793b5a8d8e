"""LangGraph tool-calling orchestrator for one chat turn.

Architecture:
  Each turn is a small LangGraph ``StateGraph`` with three nodes:

    1. **initial_response** — awaits the model with the full conversation
                              (and the tool schemas, when tools are enabled)
    2. **execute_tools**    — runs every requested tool call sequentially and
                              appends one ``ToolMessage`` per call
    3. **final_response**   — awaits the model again over the extended
                              conversation with no tools offered

  Routing:
    initial_response → (no tool calls?) → END
    initial_response → (tool calls?)    → execute_tools → final_response → END

  So a turn makes one model call when the model answers directly and
  exactly two when it asks for tools.  There is no third round: the
  follow-up call cannot request more tools because none are bound.

  Failure policy:
    * a failed model call raises ``ModelCallFailed`` (never retried, never
      papered over with a made-up reply)
    * a missing tool or a tool that raises becomes a
      ``{"success": False, "error": ...}`` tool result, so the model can
      still answer the user
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI
from langgraph.graph import END, START, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from assistant.config import (
    ANTHROPIC_API_KEY,
    MODEL_MAX_TOKENS,
    MODEL_NAME,
    MODEL_PROVIDER,
    MODEL_TEMPERATURE,
    OPENAI_API_KEY,
)
from assistant.services.metrics import metrics
from assistant.tools.registry import (
    ToolExecutionFailed,
    ToolHandler,
    ToolNotFound,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

TOOL_NOT_FOUND = "tool not found"


class ModelCallFailed(Exception):
    """The model provider call failed; fatal to the turn."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        super().__init__(f"Model call failed during {stage} response: {cause}")


# ── Turn input / output ──────────────────────────────────────────────

_ROLE_TO_MESSAGE = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


def to_message(entry: BaseMessage | Mapping[str, Any]) -> BaseMessage:
    """Convert a ``{"role", "content"}`` dict into a LangChain message."""
    if isinstance(entry, BaseMessage):
        return entry
    role = entry.get("role")
    content = entry.get("content") or ""
    if role == "tool":
        return ToolMessage(content=content, tool_call_id=entry["tool_call_id"])
    if role not in _ROLE_TO_MESSAGE:
        raise ValueError(f"Unsupported message role: {role!r}")
    return _ROLE_TO_MESSAGE[role](content=content)


@dataclass
class ChatTurn:
    """One incoming user message plus everything the model should see first."""

    message: str
    system_prompt: str
    history: Sequence[BaseMessage | Mapping[str, Any]] = field(default_factory=list)
    context_summaries: Sequence[str] = field(default_factory=list)
    tools_enabled: bool = False

    def build_messages(self) -> list[BaseMessage]:
        """``[system, *history, *summaries, user]`` in that order."""
        messages: list[BaseMessage] = [SystemMessage(content=self.system_prompt)]
        messages.extend(to_message(entry) for entry in self.history)
        messages.extend(
            SystemMessage(content=f"Context summary:\n{summary}")
            for summary in self.context_summaries
            if summary
        )
        messages.append(HumanMessage(content=self.message))
        return messages


@dataclass
class TurnResult:
    reply: str
    messages: list[BaseMessage]
    tool_results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def used_tools(self) -> bool:
        return bool(self.tool_results)


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of blocks."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict):
    """State flowing through the turn graph.

    ``messages`` uses the ``add_messages`` reducer so nodes only return
    what they append.  ``tool_results`` records ``{id, name, args, result}``
    per executed call for callers and tests.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    tool_results: list[dict[str, Any]]


# ── LLM builder ─────────────────────────────────────────────────────


def build_chat_model() -> BaseChatModel:
    """Build the configured chat model (OpenAI unless MODEL_PROVIDER=anthropic)."""
    if MODEL_PROVIDER == "anthropic":
        return ChatAnthropic(
            model=MODEL_NAME,
            api_key=ANTHROPIC_API_KEY,
            temperature=MODEL_TEMPERATURE,
            max_tokens=MODEL_MAX_TOKENS,
        )
    return ChatOpenAI(
        model=MODEL_NAME,
        api_key=OPENAI_API_KEY,
        temperature=MODEL_TEMPERATURE,
        max_tokens=MODEL_MAX_TOKENS,
    )


async def _call_model(model, messages: list[AnyMessage], stage: str) -> AIMessage:
    try:
        with metrics.track(MODEL_PROVIDER, f"{stage}_response"):
            return await model.ainvoke(messages)
    except Exception as exc:
        logger.warning("Model call failed during %s response: %s", stage, exc)
        raise ModelCallFailed(stage, exc) from exc


# ── Tool execution ──────────────────────────────────────────────────


async def execute_tool_call(registry: ToolRegistry, name: str, args: dict[str, Any]) -> dict[str, Any]:
    """Run one tool call and always return a result dict."""
    try:
        result = await registry.invoke(name, args)
    except ToolNotFound:
        logger.warning("Model requested unknown tool %r", name)
        return {"success": False, "error": TOOL_NOT_FOUND}
    except ToolExecutionFailed as exc:
        logger.warning("Tool %s failed: %s", name, exc.cause, exc_info=exc.cause)
        return {"success": False, "error": str(exc)}

    if not isinstance(result, dict):
        return {"success": True, "result": result}
    return result


def _pending_calls(message: AIMessage) -> list[dict[str, Any]]:
    """Tool calls in received order; unparseable ones carry an ``error``."""
    calls = [
        {"id": call["id"], "name": call["name"], "args": call.get("args") or {}}
        for call in message.tool_calls
    ]
    calls.extend(
        {
            "id": call.get("id") or "",
            "name": call.get("name"),
            "args": {},
            "error": call.get("error") or "invalid tool call arguments",
        }
        for call in getattr(message, "invalid_tool_calls", None) or []
    )
    return calls


# ── Nodes ───────────────────────────────────────────────────────────


def _make_initial_node(llm: BaseChatModel, registry: ToolRegistry, tools_enabled: bool):
    """Create the AwaitingInitialResponse node."""
    if tools_enabled and len(registry):
        model = llm.bind_tools(registry.schemas(), tool_choice="auto")
    else:
        model = llm

    async def initial_response(state: TurnState) -> dict:
        logger.debug(
            "initial_response — %d messages, tools=%s",
            len(state["messages"]), registry.names() if tools_enabled else [],
        )
        response = await _call_model(model, state["messages"], stage="initial")
        return {"messages": [response]}

    return initial_response


def _make_tools_node(registry: ToolRegistry):
    """Create the node that executes the requested tool calls one by one."""

    async def execute_tools(state: TurnState) -> dict:
        calls = _pending_calls(state["messages"][-1])
        tool_messages: list[ToolMessage] = []
        records: list[dict[str, Any]] = []

        for call in calls:
            if "error" in call:
                result = {"success": False, "error": call["error"]}
            else:
                result = await execute_tool_call(registry, call["name"], call["args"])
            logger.info(
                "Tool %s (%s) → success=%s", call["name"], call["id"], result.get("success"),
            )
            records.append({**call, "result": result})
            tool_messages.append(
                ToolMessage(
                    content=json.dumps(result, ensure_ascii=False, default=str),
                    tool_call_id=call["id"],
                    name=call["name"],
                )
            )

        return {
            "messages": tool_messages,
            "tool_results": state.get("tool_results", []) + records,
        }

    return execute_tools


def _make_final_node(llm: BaseChatModel):
    """Create the AwaitingFinalResponse node (no tools bound)."""

    async def final_response(state: TurnState) -> dict:
        logger.debug("final_response — %d messages", len(state["messages"]))
        response = await _call_model(llm, state["messages"], stage="final")
        return {"messages": [response]}

    return final_response


# ── Conditional edge ────────────────────────────────────────────────


def route_after_initial(state: TurnState) -> str:
    """Tool calls (valid or not) go to execute_tools; a plain answer ends the turn."""
    last_message = state["messages"][-1]
    if getattr(last_message, "tool_calls", None) or getattr(last_message, "invalid_tool_calls", None):
        return "execute_tools"
    return END


# ── Graph assembly ──────────────────────────────────────────────────


def create_turn_graph(llm: BaseChatModel, registry: ToolRegistry, tools_enabled: bool):
    """Build and compile the graph for one turn."""
    graph = StateGraph(TurnState)

    graph.add_node("initial_response", _make_initial_node(llm, registry, tools_enabled))
    graph.add_node("execute_tools", _make_tools_node(registry))
    graph.add_node("final_response", _make_final_node(llm))

    graph.add_edge(START, "initial_response")
    graph.add_conditional_edges(
        "initial_response",
        route_after_initial,
        {"execute_tools": "execute_tools", END: END},
    )
    graph.add_edge("execute_tools", "final_response")
    graph.add_edge("final_response", END)

    return graph.compile()


class ToolCallOrchestrator:
    """Runs chat turns against one chat model.

    Holds no per-turn state, so one instance serves concurrent turns.
    """

    def __init__(self, llm: BaseChatModel | None = None):
        self._llm = llm or build_chat_model()

    async def run_turn(
        self,
        turn: ChatTurn,
        registry: ToolRegistry | Mapping[str, ToolHandler] | None = None,
    ) -> TurnResult:
        """Execute one chat turn and return the assistant's final reply.

        Raises:
            ModelCallFailed: the initial or the follow-up model call failed.
        """
        if registry is None:
            registry = ToolRegistry()
        elif not isinstance(registry, ToolRegistry):
            registry = ToolRegistry.from_mapping(registry)

        graph = create_turn_graph(self._llm, registry, turn.tools_enabled)
        state = await graph.ainvoke(
            {"messages": turn.build_messages(), "tool_results": []},
        )

        messages = state["messages"]
        reply = message_text(messages[-1])
        tool_results = state.get("tool_results", [])
        logger.info(
            "Turn complete — %d tool call(s), %d chars", len(tool_results), len(reply),
        )
        return TurnResult(reply=reply, messages=messages, tool_results=tool_results)
