"""Core type definitions for the turn loop.

All types are frozen dataclasses so they can be shared freely between the
parser, the dispatcher and the runner without defensive copies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence

from openai.types.chat import ChatCompletionMessageParam

__all__ = [
    "MessageRole",
    "Message",
    "ParsedToolCall",
    "ParseResult",
    "ToolResult",
    "TurnOutput",
]


# -----------------------------------------------------------------------------
# Message Type
# -----------------------------------------------------------------------------

MessageRole = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable chat message exchanged with the completion endpoint.

    Attributes:
        role: The role of the message sender.
        content: The text content of the message.
        name: Tool name for tool result messages.
        tool_call_id: ID linking a tool result to its call.
        tool_calls: Native tool calls made by the assistant, if any.
    """

    role: MessageRole
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[Mapping[str, Any], ...] | None = None

    def to_chat_param(self) -> ChatCompletionMessageParam:
        """Convert to OpenAI's ChatCompletionMessageParam format."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            payload["name"] = self.name
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            payload["tool_calls"] = [dict(call) for call in self.tool_calls]
        return payload  # type: ignore[return-value]

    @classmethod
    def system(cls, content: str) -> Message:
        """Create a system message."""
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        """Create a user message."""
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Sequence[Mapping[str, Any]] | None = None,
    ) -> Message:
        """Create an assistant message."""
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: str | None = None) -> Message:
        """Create a tool result message."""
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name)


# -----------------------------------------------------------------------------
# Tool Call Types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ParsedToolCall:
    """A tool invocation recovered from a model reply.

    Attributes:
        call_id: Identifier unique within one parse pass.
        name: Name of the tool to invoke.
        arguments: JSON-encoded argument object.
        index: Position of the call within its batch.
    """

    call_id: str
    name: str
    arguments: str
    index: int = 0

    def to_openai_tool_call(self) -> dict[str, Any]:
        """Render the call in the chat-completions `tool_calls` shape."""
        return {
            "id": self.call_id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(slots=True, frozen=True)
class ParseResult:
    """Outcome of scanning one reply for tool calls.

    ``tool_calls`` is ``None`` when nothing decoded, never an empty tuple.
    """

    has_tools: bool
    tool_calls: tuple[ParsedToolCall, ...] | None
    leftover_text: str

    @classmethod
    def empty(cls, text: str) -> ParseResult:
        return cls(has_tools=False, tool_calls=None, leftover_text=text.strip())


@dataclass(slots=True, frozen=True)
class ToolResult:
    """Result of dispatching a single tool call."""

    tool_call_id: str
    name: str
    content: str
    success: bool = True
    role: Literal["tool"] = "tool"

    def to_message(self) -> Message:
        return Message.tool(self.content, self.tool_call_id, name=self.name)


# -----------------------------------------------------------------------------
# Turn Output
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class TurnOutput:
    """Final outcome of one trigger's turn loop.

    Attributes:
        response: Text to show the recipient; empty means stay silent.
        tool_results: Every tool result produced across all iterations.
        iterations: Number of dispatch rounds that ran.
        timed_out: Whether the loop ended on a completion timeout.
        max_iterations_reached: Whether the loop stopped with calls still pending.
    """

    response: str
    tool_results: tuple[ToolResult, ...] = field(default_factory=tuple)
    iterations: int = 0
    timed_out: bool = False
    max_iterations_reached: bool = False
