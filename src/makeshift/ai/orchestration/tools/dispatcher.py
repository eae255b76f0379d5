"""Concurrent dispatcher for parsed tool calls.

Every call in a batch yields exactly one :class:`ToolResult`. Unknown tools
and failing handlers are reported back to the model as text instead of
aborting the batch.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Sequence

from ..types import Message, ParsedToolCall, ToolResult
from .registry import ToolRegistry
from .types import AmbientContext

__all__ = [
    "ToolDispatcher",
    "DispatcherConfig",
    "format_tool_result_content",
    "parse_tool_arguments",
    "last_non_tool_content",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def format_tool_result_content(result: Any) -> str:
    """Format a handler's return value as message content."""
    if result is None:
        return "null"

    if isinstance(result, str):
        return result

    if isinstance(result, bool):
        return "true" if result else "false"

    if isinstance(result, (int, float)):
        return str(result)

    if isinstance(result, (dict, list, tuple)):
        try:
            return json.dumps(result, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            return str(result)

    return str(result)


def parse_tool_arguments(arguments: str) -> dict[str, Any]:
    """Decode a call's JSON argument string.

    Raises:
        ValueError: If the string is not a JSON object.
    """
    if not arguments or not arguments.strip():
        return {}
    parsed = json.loads(arguments)
    if not isinstance(parsed, dict):
        raise ValueError(f"Tool arguments must be a JSON object, got {type(parsed).__name__}")
    return parsed


def last_non_tool_content(conversation: Sequence[Message]) -> str:
    """Return the content of the newest message that is not a tool result."""
    for message in reversed(conversation):
        if message.role != "tool":
            return message.content
    return ""


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class DispatcherConfig:
    """Configuration for the tool dispatcher.

    Attributes:
        log_arguments: Whether to log decoded arguments (may contain user data).
        log_results: Whether to log result content.
    """

    log_arguments: bool = False
    log_results: bool = False


class ToolDispatcher:
    """Runs a batch of parsed tool calls against a :class:`ToolRegistry`."""

    def __init__(
        self,
        registry: ToolRegistry,
        config: DispatcherConfig | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or DispatcherConfig()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def dispatch(
        self,
        calls: Sequence[ParsedToolCall],
        conversation: Sequence[Message],
        context: AmbientContext | None = None,
    ) -> list[ToolResult]:
        """Execute ``calls`` concurrently and return their results in call order.

        Args:
            calls: Calls from a single parse pass.
            conversation: History being answered; its last non-tool message is
                handed to handlers as the originating request.
            context: Platform capabilities handed to each handler untouched.
        """
        if not calls:
            return []
        original_message = last_non_tool_content(conversation)
        start = time.perf_counter()
        results = await asyncio.gather(
            *(self._dispatch_one(call, original_message, context) for call in calls)
        )
        LOGGER.debug(
            "Dispatched %d tool call(s) in %.1fms",
            len(calls),
            (time.perf_counter() - start) * 1000,
        )
        return list(results)

    async def _dispatch_one(
        self,
        call: ParsedToolCall,
        original_message: str,
        context: AmbientContext | None,
    ) -> ToolResult:
        tool = self._registry.get(call.name)
        if tool is None:
            LOGGER.warning("Model requested unknown tool %s", call.name)
            return ToolResult(
                tool_call_id=call.call_id,
                name=call.name,
                content=f"No handler implemented for tool: {call.name}",
                success=False,
            )

        try:
            arguments = parse_tool_arguments(call.arguments)
            if self._config.log_arguments:
                LOGGER.debug("Executing tool %s with args: %s", call.name, arguments)
            else:
                LOGGER.debug("Executing tool %s", call.name)
            result = tool.handler(arguments, original_message, context)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            LOGGER.warning("Tool %s failed: %s", call.name, exc, exc_info=True)
            return ToolResult(
                tool_call_id=call.call_id,
                name=call.name,
                content=f"Error executing tool {call.name}: {_describe_error(exc)}",
                success=False,
            )

        content = format_tool_result_content(result)
        if self._config.log_results:
            LOGGER.debug("Tool %s returned: %s", call.name, content[:500])
        return ToolResult(tool_call_id=call.call_id, name=call.name, content=content)


def _describe_error(exc: BaseException) -> str:
    message = str(exc)
    return message or type(exc).__name__

