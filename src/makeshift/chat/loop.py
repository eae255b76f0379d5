"""Message loop: turns trigger messages into replies.

Each trigger runs as its own task. The loop is the outer guard for the turn
runner: it decides whether a trigger is processed at all, caps chains of
replies to other automated accounts, and drops replies when the completion
endpoint fails instead of sending partial output.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator

from ..ai.orchestration.reply import is_null_reply, sanitize_reply
from ..ai.orchestration.runner import TurnRunner
from .conversation import build_conversation
from .models import ChatPlatform, PlatformMessage
from .outbound import DEFAULT_MESSAGE_LIMIT, split_reply

__all__ = ["LoopConfig", "MessageLoop", "ReplyChainGuard"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class LoopConfig:
    """Configuration for the message loop.

    Attributes:
        history_limit: Number of recent messages fetched per trigger.
        max_reply_chain: Consecutive replies allowed to automated authors.
        channel: Only triggers from this channel id are processed when set.
        message_limit: Maximum length of one outgoing message.
    """

    history_limit: int = 16
    max_reply_chain: int = 8
    channel: str | None = None
    message_limit: int = DEFAULT_MESSAGE_LIMIT


class ReplyChainGuard:
    """Caps back-and-forth exchanges with other automated accounts per channel.

    A human message resets the channel's count; each reply sent in response to
    an automated author increments it.
    """

    def __init__(self, limit: int) -> None:
        self._limit = max(0, limit)
        self._counts: dict[str, int] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def count(self, channel_id: str) -> int:
        return self._counts.get(channel_id, 0)

    def allow(self, trigger: PlatformMessage) -> bool:
        if not trigger.author_is_bot:
            self._counts[trigger.channel_id] = 0
            return True
        return self.count(trigger.channel_id) < self._limit

    def record_reply(self, trigger: PlatformMessage) -> None:
        if trigger.author_is_bot:
            self._counts[trigger.channel_id] = self.count(trigger.channel_id) + 1


class MessageLoop:
    """Consumes platform triggers and posts the runner's replies."""

    def __init__(
        self,
        platform: ChatPlatform,
        runner: TurnRunner,
        config: LoopConfig | None = None,
    ) -> None:
        self._platform = platform
        self._runner = runner
        self._config = config or LoopConfig()
        self._guard = ReplyChainGuard(self._config.max_reply_chain)
        self._tasks: set[asyncio.Task[str | None]] = set()

    @property
    def config(self) -> LoopConfig:
        return self._config

    @property
    def guard(self) -> ReplyChainGuard:
        return self._guard

    async def run(self, triggers: AsyncIterator[PlatformMessage] | None = None) -> None:
        """Handle every trigger from ``triggers`` (the platform's events by default)."""
        source = triggers if triggers is not None else self._platform.events()
        async for trigger in source:
            task = asyncio.create_task(self.handle(trigger))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        if self._tasks:
            await asyncio.gather(*self._tasks)

    async def handle(self, trigger: PlatformMessage) -> str | None:
        """Process one trigger and return the text that was sent, if any."""
        if self._config.channel and trigger.channel_id != self._config.channel:
            return None
        LOGGER.info("%s: %s", trigger.author_name, trigger.content)
        if trigger.author_id == self._platform.self_id:
            return None
        if not self._guard.allow(trigger):
            LOGGER.warning(
                "Reply chain limit (%d) reached in channel %s; ignoring %s",
                self._guard.limit,
                trigger.channel_id,
                trigger.author_name,
            )
            return None

        channel = self._platform.channel(trigger.channel_id)
        try:
            async with channel.typing():
                recent = await channel.fetch_recent(self._config.history_limit)
                conversation = build_conversation(
                    recent,
                    self_id=self._platform.self_id,
                    channel_type=channel.channel_type,
                )
                reply = await self._runner.respond(conversation, context=channel)
        except Exception:
            LOGGER.exception("Error getting AI response")
            return None

        if not reply or is_null_reply(reply):
            LOGGER.debug("No reply for message %s", trigger.id)
            return None
        cleaned = sanitize_reply(reply)
        if not cleaned:
            return None

        try:
            for segment in split_reply(cleaned, limit=self._config.message_limit):
                await channel.send_text(segment.text)
        except Exception:
            LOGGER.exception("Failed to send reply to channel %s", trigger.channel_id)
            return None
        self._guard.record_reply(trigger)
        return cleaned
