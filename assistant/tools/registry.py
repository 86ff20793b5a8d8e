"""Name → async handler registry for the tools the model may call.

The orchestrator only ever talks to a ``ToolRegistry``: it asks for the
tool schemas to offer the model and invokes tools by name.  What a tool
does internally is the registry owner's business.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class ToolNotFound(LookupError):
    """The model asked for a tool that is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"tool not found: {name}")


class ToolExecutionFailed(Exception):
    """A tool handler raised.  Carries the tool name for logging."""

    def __init__(self, name: str, cause: BaseException):
        self.name = name
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)


@dataclass(frozen=True)
class RegisteredTool:
    name: str
    handler: ToolHandler
    description: str = ""
    args_schema: type[BaseModel] | None = None

    def schema(self) -> dict[str, Any]:
        """OpenAI function-tool format, accepted by every LangChain chat model."""
        if self.args_schema is not None:
            parameters = self.args_schema.model_json_schema()
            parameters.pop("title", None)
        else:
            parameters = {"type": "object", "properties": {}}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


class ToolRegistry:
    """Ordered mapping of tool name to handler."""

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    @classmethod
    def from_mapping(cls, handlers: Mapping[str, ToolHandler]) -> ToolRegistry:
        """Wrap a bare ``{name: handler}`` mapping (no schemas, no validation)."""
        registry = cls()
        for name, handler in handlers.items():
            registry.register(name, handler)
        return registry

    def register(
        self,
        name: str,
        handler: ToolHandler,
        *,
        description: str = "",
        args_schema: type[BaseModel] | None = None,
    ) -> None:
        if name in self._tools:
            raise ValueError(f"Tool {name!r} is already registered")
        self._tools[name] = RegisteredTool(
            name=name, handler=handler, description=description, args_schema=args_schema,
        )

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        return [tool.schema() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def invoke(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Validate *args* against the tool's schema and run its handler.

        Raises:
            ToolNotFound: *name* is not registered.
            ToolExecutionFailed: validation or the handler itself failed.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFound(name)
        try:
            if tool.args_schema is not None:
                args = tool.args_schema.model_validate(args or {}).model_dump()
            return await tool.handler(args)
        except Exception as exc:
            raise ToolExecutionFailed(name, exc) from exc


def with_simulated_fallback(
    handler: ToolHandler,
    is_authorized: Callable[[], bool],
    simulate: Callable[[dict[str, Any]], dict[str, Any]],
) -> ToolHandler:
    """Answer with a simulated success when the calendar is not authorized.

    Every calendar tool goes through this wrapper, so a user who never
    connected a calendar still gets a working conversation.  The wrapped
    handler is never called in that case.
    """

    @functools.wraps(handler)
    async def wrapper(args: dict[str, Any]) -> dict[str, Any]:
        if not is_authorized():
            logger.info("Calendar not authorized; simulating %s", handler.__name__)
            return {**simulate(args), "success": True, "simulated": True}
        return await handler(args)

    return wrapper
