"""Splitting of outgoing replies into separately sent segments."""

from __future__ import annotations

import re

from .models import ReplySegment

__all__ = ["DEFAULT_MESSAGE_LIMIT", "split_reply", "wrap_text"]

DEFAULT_MESSAGE_LIMIT = 2000

_SPECIAL_RE = re.compile(
    r"(?P<math>```(?:latex|tex|math)[^\n]*\n[\s\S]*?```|\$\$[\s\S]+?\$\$)"
    r"|(?P<image>!\[[^\]]*\]\((?P<url>[^)\s]+)\))",
    re.IGNORECASE,
)


def wrap_text(text: str, limit: int = DEFAULT_MESSAGE_LIMIT) -> list[str]:
    """Break ``text`` into pieces no longer than ``limit``, preferring line breaks."""
    if limit <= 0 or len(text) <= limit:
        return [text]
    pieces: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = remaining.rfind(" ", 0, limit)
        if cut <= 0:
            cut = limit
        pieces.append(remaining[:cut].rstrip())
        remaining = remaining[cut:].lstrip()
    if remaining:
        pieces.append(remaining)
    return [piece for piece in pieces if piece]


def split_reply(text: str, *, limit: int = DEFAULT_MESSAGE_LIMIT) -> list[ReplySegment]:
    """Split ``text`` so math blocks and markdown images are sent on their own."""
    segments: list[ReplySegment] = []

    def _add_text(chunk: str) -> None:
        chunk = chunk.strip()
        if chunk:
            segments.extend(ReplySegment(kind="text", text=piece) for piece in wrap_text(chunk, limit))

    cursor = 0
    for match in _SPECIAL_RE.finditer(text):
        _add_text(text[cursor:match.start()])
        cursor = match.end()
        if match.group("math"):
            segments.append(ReplySegment(kind="math", text=match.group("math")))
        else:
            segments.append(ReplySegment(kind="image", text=match.group("image"), url=match.group("url")))
    _add_text(text[cursor:])
    return segments
