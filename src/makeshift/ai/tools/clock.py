"""Date and time tools."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from ..orchestration.tools.types import AmbientContext, ToolDefinition, text_argument

__all__ = ["current_time_tool", "message_timestamp_tool", "format_timestamp"]

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _local_now() -> datetime:
    return datetime.now(timezone.utc).astimezone()


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as e.g. ``Monday 19 October 2026 at 14:03:05 UTC``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.strftime("%A %d %B %Y at %H:%M:%S %Z").strip()


def current_time_tool(clock: Clock = _local_now) -> ToolDefinition:
    def _handler(_args: Mapping[str, Any], _message: str, _context: AmbientContext | None) -> str:
        return f"Current time: {format_timestamp(clock())}"

    return ToolDefinition(
        name="get_current_time",
        description="Get the current date and time.",
        handler=_handler,
        parameters={"type": "object", "properties": {}, "required": []},
    )


def message_timestamp_tool() -> ToolDefinition:
    async def _handler(args: Mapping[str, Any], _message: str, context: AmbientContext | None) -> str:
        message_id = text_argument(args, "message_id").strip()
        if context is None:
            return "Error: Channel context not provided."
        if not message_id:
            return "Error: The 'message_id' parameter is required."
        message = await context.fetch_message(message_id)
        if message is None:
            return f"Message with ID {message_id} not found."
        return f"Message {message_id} was sent on: {format_timestamp(message.timestamp)}"

    return ToolDefinition(
        name="get_message_timestamp",
        description="Get the timestamp of a specific message.",
        handler=_handler,
        parameters={
            "type": "object",
            "properties": {
                "message_id": {"type": "string", "description": "The ID of the message."},
            },
            "required": ["message_id"],
        },
    )
