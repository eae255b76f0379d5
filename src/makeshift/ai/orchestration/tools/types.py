"""Tool definition types shared by the registry and dispatcher.

Handlers receive three positional arguments: the decoded argument mapping, the
content of the most recent non-tool message, and the ambient context supplied
by the chat platform.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, runtime_checkable

__all__ = [
    "AmbientContext",
    "ContextMessage",
    "ToolHandler",
    "ToolDefinition",
    "text_argument",
]


# -----------------------------------------------------------------------------
# Ambient Context
# -----------------------------------------------------------------------------


@runtime_checkable
class ContextMessage(Protocol):
    """Minimal view of a platform message exposed to tool handlers."""

    @property
    def id(self) -> str: ...

    @property
    def content(self) -> str: ...

    @property
    def timestamp(self) -> datetime: ...


@runtime_checkable
class AmbientContext(Protocol):
    """Capabilities a tool handler may use against the originating channel."""

    async def send_text(self, text: str) -> None:
        """Post ``text`` to the channel."""
        ...

    async def fetch_message(self, message_id: str) -> ContextMessage | None:
        """Return the message with ``message_id`` or ``None`` when it does not exist."""
        ...

    async def react(self, message_id: str, emoji: str) -> None:
        """Add ``emoji`` as a reaction to ``message_id``."""
        ...

    async def reply(self, message_id: str, text: str) -> None:
        """Send ``text`` as a reply referencing ``message_id``."""
        ...


# -----------------------------------------------------------------------------
# Tool Definition
# -----------------------------------------------------------------------------

ToolHandler = Callable[
    [Mapping[str, Any], str, "AmbientContext | None"],
    "Awaitable[Any] | Any",
]


def _has_visible_default(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (int, float)):
        return value != 0
    return True


def _render_default(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


@dataclass(slots=True, frozen=True)
class ToolDefinition:
    """A callable tool plus the schema advertised to the model.

    Attributes:
        name: Unique identifier for the tool.
        description: Human-readable description shown in the manifest.
        parameters: JSON Schema object with ``properties`` and ``required``.
        handler: Sync or async callable invoked by the dispatcher.
    """

    name: str
    description: str
    handler: ToolHandler
    parameters: Mapping[str, Any] = field(default_factory=dict)

    @property
    def properties(self) -> Mapping[str, Mapping[str, Any]]:
        return self.parameters.get("properties") or {}

    @property
    def required(self) -> Sequence[str]:
        return tuple(self.parameters.get("required") or ())

    def signature(self) -> str:
        """Render ``name(param?: type = default, ...)`` for the manifest."""
        required = set(self.required)
        rendered: list[str] = []
        for param, schema in self.properties.items():
            marker = "" if param in required else "?"
            piece = f"{param}{marker}: {schema.get('type', 'any')}"
            default = schema.get("default")
            if _has_visible_default(default):
                piece += f" = {_render_default(default)}"
            rendered.append(piece)
        return f"{self.name}({', '.join(rendered)})"

    def describe(self) -> str:
        return f"{self.signature()}: {self.description}"

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters) if self.parameters else {
                    "type": "object",
                    "properties": {},
                },
            },
        }


def text_argument(args: Mapping[str, Any], key: str, default: str = "") -> str:
    """Return ``args[key]`` as text, undoing attribute coercion.

    Tag attributes such as ``message="0"`` or ``message="false"`` arrive as
    ``0`` and ``False``; they are rendered back as ``"0"`` and ``"false"``.
    Only a missing or ``None`` value yields ``default``.
    """
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)
