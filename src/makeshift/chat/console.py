"""In-memory console channel for running the agent from a terminal."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import sys
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, TextIO

from .models import MessageReference, PlatformMessage

__all__ = ["ConsoleChannel", "ConsolePlatform"]

LOGGER = logging.getLogger(__name__)

_CONSOLE_CHANNEL_ID = "console"


class ConsoleChannel:
    """A single direct-message style channel kept in memory."""

    def __init__(
        self,
        *,
        self_id: str,
        self_name: str,
        output: TextIO | None = None,
        channel_id: str = _CONSOLE_CHANNEL_ID,
        channel_type: str = "DM",
    ) -> None:
        self._self_id = self_id
        self._self_name = self_name
        self._output = output or sys.stdout
        self._channel_id = channel_id
        self._channel_type = channel_type
        self._messages: list[PlatformMessage] = []
        self._reactions: dict[str, list[str]] = {}
        self._ids = itertools.count(1)

    @property
    def channel_id(self) -> str:
        return self._channel_id

    @property
    def channel_type(self) -> str:
        return self._channel_type

    @property
    def messages(self) -> tuple[PlatformMessage, ...]:
        return tuple(self._messages)

    def reactions(self, message_id: str) -> tuple[str, ...]:
        return tuple(self._reactions.get(message_id, ()))

    def post(
        self,
        author_id: str,
        author_name: str,
        content: str,
        *,
        reply_to: MessageReference | None = None,
        author_is_bot: bool = False,
    ) -> PlatformMessage:
        """Append a message to the channel history and return it."""
        message = PlatformMessage(
            id=str(next(self._ids)),
            channel_id=self._channel_id,
            author_id=author_id,
            author_name=author_name,
            content=content,
            timestamp=datetime.now(timezone.utc),
            reply_to=reply_to,
            author_is_bot=author_is_bot,
        )
        self._messages.append(message)
        return message

    async def fetch_recent(self, limit: int) -> list[PlatformMessage]:
        return list(reversed(self._messages[-limit:])) if limit > 0 else []

    async def fetch_message(self, message_id: str) -> PlatformMessage | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    async def send_text(self, text: str) -> None:
        message = self.post(self._self_id, self._self_name, text)
        self._write(f"{self._self_name} [#{message.id}]: {text}")

    async def reply(self, message_id: str, text: str) -> None:
        target = await self.fetch_message(message_id)
        if target is None:
            raise LookupError(f"Unknown message {message_id}")
        reference = MessageReference(message_id, target.author_name, target.content)
        message = self.post(self._self_id, self._self_name, text, reply_to=reference)
        self._write(f"{self._self_name} [#{message.id} -> #{message_id}]: {text}")

    async def react(self, message_id: str, emoji: str) -> None:
        if await self.fetch_message(message_id) is None:
            raise LookupError(f"Unknown message {message_id}")
        self._reactions.setdefault(message_id, []).append(emoji)
        self._write(f"[{self._self_name} reacted {emoji} to #{message_id}]")

    @contextlib.asynccontextmanager
    async def typing(self) -> AsyncIterator[None]:
        LOGGER.debug("%s is typing", self._self_name)
        yield

    def _write(self, line: str) -> None:
        print(line, file=self._output, flush=True)


class ConsolePlatform:
    """Feeds lines typed on stdin to the message loop as user messages."""

    def __init__(
        self,
        *,
        self_id: str = "makeshift",
        self_name: str = "makeshift",
        user_id: str = "console-user",
        user_name: str = "you",
        output: TextIO | None = None,
        read_line: Callable[[], str] | None = None,
    ) -> None:
        self._self_id = self_id
        self._user_id = user_id
        self._user_name = user_name
        self._read_line = read_line or _prompt_line
        self._channel = ConsoleChannel(self_id=self_id, self_name=self_name, output=output)

    @property
    def self_id(self) -> str:
        return self._self_id

    def channel(self, channel_id: str) -> ConsoleChannel:
        if channel_id != self._channel.channel_id:
            raise LookupError(f"Unknown channel {channel_id}")
        return self._channel

    def submit(self, content: str) -> PlatformMessage:
        """Post ``content`` as the console user."""
        return self._channel.post(self._user_id, self._user_name, content)

    async def events(self) -> AsyncIterator[PlatformMessage]:
        while True:
            try:
                line = await asyncio.to_thread(self._read_line)
            except EOFError:
                return
            if line.strip() in {"/quit", "/exit"}:
                return
            if not line.strip():
                continue
            yield self.submit(line)


def _prompt_line() -> str:
    return input()
