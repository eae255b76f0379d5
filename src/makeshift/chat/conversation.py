"""Conversation building from recent channel messages.

Consecutive messages from the same (non-agent) author are merged into a single
user turn so the model sees each speaker's burst as one block::

    <user: Alice, channel_type: DM>:
    [id: 101 | sent: 2026-10-19 14:03:05 UTC]
    is it going to rain?

    [id: 102 | sent: 2026-10-19 14:03:12 UTC | replying to Bob (id 99): "bring an umbrella"]
    in london I mean
"""

from __future__ import annotations

import logging
from itertools import groupby
from typing import Iterable, Sequence

from ..ai.orchestration.types import Message
from .models import PlatformMessage

__all__ = ["build_conversation", "format_message_block", "format_user_turn"]

LOGGER = logging.getLogger(__name__)

_QUOTE_LIMIT = 120


def _quote(text: str) -> str:
    flattened = " ".join(text.split())
    if len(flattened) > _QUOTE_LIMIT:
        flattened = flattened[: _QUOTE_LIMIT - 1].rstrip() + "…"
    return flattened


def format_message_block(message: PlatformMessage) -> str:
    """Render one message as a metadata line followed by its body."""
    header = [f"id: {message.id}", f"sent: {message.timestamp:%Y-%m-%d %H:%M:%S %Z}".strip()]
    reference = message.reply_to
    if reference is not None:
        target = reference.author_name or "unknown"
        context = f"replying to {target} (id {reference.message_id})"
        if reference.content:
            context += f': "{_quote(reference.content)}"'
        header.append(context)
    lines = [f"[{' | '.join(header)}]"]
    if message.content.strip():
        lines.append(message.content.strip())
    lines.extend(attachment.describe() for attachment in message.attachments)
    return "\n".join(lines)


def format_user_turn(messages: Sequence[PlatformMessage], channel_type: str) -> str:
    author = messages[0].author_name
    blocks = "\n\n".join(format_message_block(message) for message in messages)
    return f"<user: {author}, channel_type: {channel_type}>:\n{blocks}"


def build_conversation(
    messages: Iterable[PlatformMessage],
    *,
    self_id: str,
    channel_type: str,
    newest_first: bool = True,
) -> list[Message]:
    """Turn fetched channel messages into chat messages, oldest first.

    Args:
        messages: Messages as returned by the platform.
        self_id: Author id of the agent; its messages become assistant turns.
        channel_type: Label shown to the model in each user header.
        newest_first: Whether ``messages`` arrive newest first.
    """
    ordered = list(messages)
    if newest_first:
        ordered.reverse()
    kept = [message for message in ordered if message.has_payload]

    conversation: list[Message] = []
    for author_id, group in groupby(kept, key=lambda message: message.author_id):
        burst = list(group)
        if author_id == self_id:
            conversation.extend(Message.assistant(message.content.strip()) for message in burst)
        else:
            conversation.append(Message.user(format_user_turn(burst, channel_type)))
    LOGGER.debug(
        "Built conversation of %d message(s) from %d channel message(s)",
        len(conversation),
        len(ordered),
    )
    return conversation
