"""Tool registry keyed by tool name.

The registry is populated once at startup and then only read, so it can be
shared by every in-flight trigger without locking.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Sequence

from .types import ToolDefinition

__all__ = ["ToolRegistry"]

LOGGER = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for the tools advertised to the model.

    Example:
        registry = ToolRegistry()
        registry.register([
            ToolDefinition(
                name="greet",
                description="Greet someone",
                handler=lambda args, _msg, _ctx: f"Hello, {args['name']}!",
                parameters={"type": "object", "properties": {"name": {"type": "string"}}},
            ),
        ])
        print(registry.describe())
    """

    def __init__(self, tools: Iterable[ToolDefinition] | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        if tools is not None:
            self.register(tools)

    def register(self, tools: Iterable[ToolDefinition]) -> None:
        """Register every tool in ``tools``; a repeated name replaces the earlier entry."""
        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> ToolDefinition:
        """Register a single tool definition."""
        if tool.name in self._tools:
            LOGGER.warning("Tool %s registered twice; keeping the latest definition", tool.name)
        self._tools[tool.name] = tool
        LOGGER.debug("Registered tool: %s", tool.name)
        return tool

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool by name, or ``None`` when nothing is registered under it."""
        return self._tools.get(name)

    def list_names(self) -> list[str]:
        return list(self._tools)

    def describe(self) -> str:
        """Return the manifest injected into the system prompt, one line per tool."""
        return "\n".join(tool.describe() for tool in self._tools.values())

    def get_openai_tools(
        self,
        *,
        filter_names: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI format for native function calling."""
        tools: list[dict[str, Any]] = []
        for tool in self._tools.values():
            if filter_names is not None and tool.name not in filter_names:
                continue
            tools.append(tool.to_openai_tool())
        return tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
