"""Tools that act on messages in the originating channel."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..orchestration.tools.types import AmbientContext, ToolDefinition, text_argument

__all__ = ["reply_tool", "react_tool"]

LOGGER = logging.getLogger(__name__)


def reply_tool() -> ToolDefinition:
    async def _handler(args: Mapping[str, Any], _message: str, context: AmbientContext | None) -> str:
        message_id = text_argument(args, "id").strip()
        text = text_argument(args, "message")
        if context is None:
            return "Error: Channel context not provided."
        if not message_id or not text.strip():
            return "Error: Both 'id' and 'message' parameters are required."
        target = await context.fetch_message(message_id)
        if target is None:
            return f"Error: Message with ID {message_id} could not be found."
        await context.reply(message_id, text)
        LOGGER.info("Replied to message %s", message_id)
        return f"Successfully replied to message ID {message_id}"

    return ToolDefinition(
        name="specifically_reply_to_message",
        description="Reply to a specific message in the current channel. Only use when relevant.",
        handler=_handler,
        parameters={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "ID of message to reply to."},
                "message": {"type": "string", "description": "Text content to send as the reply."},
            },
            "required": ["id", "message"],
        },
    )


def react_tool() -> ToolDefinition:
    async def _handler(args: Mapping[str, Any], _message: str, context: AmbientContext | None) -> str:
        message_id = text_argument(args, "id").strip()
        reactions = args.get("reactions")
        if context is None:
            return "Error: Channel context not provided."
        if not message_id or reactions is None:
            return "Error: Both 'id' and 'reactions' parameters are required."
        if not isinstance(reactions, list):
            reactions = [text_argument(args, "reactions")]
        if not reactions:
            return "Error: The 'reactions' parameter must be a non-empty array of emojis."
        target = await context.fetch_message(message_id)
        if target is None:
            return f"Error: Message with ID {message_id} could not be found."
        for emoji in reactions:
            await context.react(message_id, str(emoji))
        emoji_list = ", ".join(str(emoji) for emoji in reactions)
        return f"Successfully reacted to message ID {message_id} with emojis: {emoji_list}"

    return ToolDefinition(
        name="react_to_message",
        description=(
            "React to a specific message with one or more standard unicode emojis. "
            "Does not work with ascii emoticons."
        ),
        handler=_handler,
        parameters={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "ID of message to react to."},
                "reactions": {
                    "type": "array",
                    "description": "Array of unicode emojis as reactions.",
                    "items": {"type": "string"},
                },
            },
            "required": ["id", "reactions"],
        },
    )
