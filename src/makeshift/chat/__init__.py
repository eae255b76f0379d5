"""Chat-platform side of the agent: conversation building, replies and the message loop."""

from .console import ConsoleChannel, ConsolePlatform
from .conversation import build_conversation
from .loop import LoopConfig, MessageLoop, ReplyChainGuard
from .models import (
    Attachment,
    ChatChannel,
    ChatPlatform,
    MessageReference,
    PlatformMessage,
    ReplySegment,
)
from .outbound import split_reply

__all__ = [
    "Attachment",
    "ChatChannel",
    "ChatPlatform",
    "ConsoleChannel",
    "ConsolePlatform",
    "LoopConfig",
    "MessageLoop",
    "MessageReference",
    "PlatformMessage",
    "ReplyChainGuard",
    "ReplySegment",
    "build_conversation",
    "split_reply",
]
