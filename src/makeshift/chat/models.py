"""Platform-neutral message types and the channel protocols the loop talks to."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import AsyncContextManager, AsyncIterator, Literal, Protocol, Sequence, runtime_checkable

from ..ai.orchestration.tools.types import AmbientContext

__all__ = [
    "Attachment",
    "ChatChannel",
    "ChatPlatform",
    "MessageReference",
    "PlatformMessage",
    "ReplySegment",
    "SegmentKind",
]


# -----------------------------------------------------------------------------
# Inbound messages
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Attachment:
    """File attached to a platform message.

    ``text`` carries any content already extracted from the file (a caption,
    alt text or transcribed document) so the model can read it.
    """

    filename: str
    url: str = ""
    content_type: str | None = None
    text: str | None = None

    def describe(self) -> str:
        label = self.filename
        if self.content_type:
            label = f"{label} ({self.content_type})"
        if self.url:
            label = f"{label} {self.url}"
        line = f"[attachment: {label}]"
        if self.text:
            line = f"{line}\n{self.text.strip()}"
        return line


@dataclass(slots=True, frozen=True)
class MessageReference:
    """The message another message replies to."""

    message_id: str
    author_name: str | None = None
    content: str | None = None


@dataclass(slots=True, frozen=True)
class PlatformMessage:
    id: str
    channel_id: str
    author_id: str
    author_name: str
    content: str
    timestamp: datetime
    attachments: tuple[Attachment, ...] = ()
    reply_to: MessageReference | None = None
    author_is_bot: bool = False

    @property
    def has_payload(self) -> bool:
        return bool(self.content.strip()) or bool(self.attachments)


# -----------------------------------------------------------------------------
# Outbound segments
# -----------------------------------------------------------------------------

SegmentKind = Literal["text", "math", "image"]


@dataclass(slots=True, frozen=True)
class ReplySegment:
    """One separately sent piece of a reply."""

    kind: SegmentKind
    text: str
    url: str | None = None


# -----------------------------------------------------------------------------
# Platform protocols
# -----------------------------------------------------------------------------


@runtime_checkable
class ChatChannel(AmbientContext, Protocol):
    """A channel the agent can read from and post into."""

    @property
    def channel_id(self) -> str: ...

    @property
    def channel_type(self) -> str: ...

    async def fetch_recent(self, limit: int) -> Sequence[PlatformMessage]:
        """Return up to ``limit`` messages, newest first."""
        ...

    def typing(self) -> AsyncContextManager[None]:
        """Show a typing indicator while the context is open."""
        ...


class ChatPlatform(Protocol):
    """Source of trigger messages and channel handles."""

    @property
    def self_id(self) -> str: ...

    def channel(self, channel_id: str) -> ChatChannel: ...

    def events(self) -> AsyncIterator[PlatformMessage]: ...
