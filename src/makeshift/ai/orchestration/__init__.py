"""Turn loop, makeshift tool-call parsing and tool dispatch."""

from .runner import CompletionBackend, RunnerConfig, TurnRunner, TurnState
from .tool_call_parser import (
    parse_legacy_json_tool_call,
    parse_makeshift_tool_calls,
    parse_tool_calls,
)
from .types import Message, ParsedToolCall, ParseResult, ToolResult, TurnOutput

__all__ = [
    "CompletionBackend",
    "Message",
    "ParsedToolCall",
    "ParseResult",
    "RunnerConfig",
    "ToolResult",
    "TurnOutput",
    "TurnRunner",
    "TurnState",
    "parse_legacy_json_tool_call",
    "parse_makeshift_tool_calls",
    "parse_tool_calls",
]
