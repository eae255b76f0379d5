"""Tool registry, dispatcher and related types.

Example:
    from makeshift.ai.orchestration.tools import ToolDefinition, ToolDispatcher, ToolRegistry

    registry = ToolRegistry([
        ToolDefinition(
            name="greet",
            description="Greet someone",
            handler=lambda args, _msg, _ctx: f"Hello, {args.get('name', 'World')}!",
        ),
    ])
    dispatcher = ToolDispatcher(registry)
    results = await dispatcher.dispatch(calls, conversation)
"""

from .types import (
    AmbientContext,
    ContextMessage,
    ToolDefinition,
    ToolHandler,
    text_argument,
)

from .registry import ToolRegistry

from .dispatcher import (
    DispatcherConfig,
    ToolDispatcher,
    format_tool_result_content,
    last_non_tool_content,
    parse_tool_arguments,
)

__all__ = [
    # types.py
    "AmbientContext",
    "ContextMessage",
    "ToolDefinition",
    "ToolHandler",
    "text_argument",
    # registry.py
    "ToolRegistry",
    # dispatcher.py
    "DispatcherConfig",
    "ToolDispatcher",
    "format_tool_result_content",
    "last_non_tool_content",
    "parse_tool_arguments",
]
