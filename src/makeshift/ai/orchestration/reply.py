"""Helpers that turn raw completion text into what the recipient may see."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ...utils.logging import log_block

__all__ = [
    "NULL_SENTINEL",
    "VisibleReply",
    "extract_visible_text",
    "is_null_reply",
    "sanitize_reply",
    "strip_thoughts",
]

LOGGER = logging.getLogger(__name__)

# The model answers with this marker when it decides not to reply at all.
NULL_SENTINEL = "<NULL>"

_THINK_BLOCK_RE = re.compile(r"<think>(?P<thought>[\s\S]*?)(?:</think>|<\\think>)", re.IGNORECASE)
_THINK_CLOSE_RE = re.compile(r"</think>|<\\think>", re.IGNORECASE)
_TRAILING_NULL_RE = re.compile(re.escape(NULL_SENTINEL) + r"\s*$")


@dataclass(slots=True, frozen=True)
class VisibleReply:
    """Visible text of a completion along with any thoughts that were removed."""

    text: str
    thoughts: tuple[str, ...] = ()
    from_reasoning: bool = False


def strip_thoughts(text: str) -> tuple[str, tuple[str, ...]]:
    """Remove ``<think>`` blocks from ``text``.

    A closing delimiter without an opening one marks everything before it as
    thought, which is how some reasoning models start their replies.
    """
    if not text:
        return "", ()
    thoughts: list[str] = []

    def _collect(match: re.Match[str]) -> str:
        thoughts.append(match.group("thought").strip())
        return ""

    visible = _THINK_BLOCK_RE.sub(_collect, text)
    dangling = list(_THINK_CLOSE_RE.finditer(visible))
    if dangling:
        last = dangling[-1]
        thoughts.append(visible[:last.start()].strip())
        visible = visible[last.end():]
    return visible.strip(), tuple(thought for thought in thoughts if thought)


def extract_visible_text(content: str | None, reasoning: str | None = None) -> VisibleReply:
    """Choose the text to treat as the model's reply.

    Primary content wins once thoughts are stripped from it. When nothing is
    left, the reasoning channel is used instead: the text after its last
    closing think delimiter if one exists, otherwise the whole reasoning text.
    """
    visible, thoughts = strip_thoughts(content or "")
    for thought in thoughts:
        log_block(LOGGER, "Model thought", thought)
    if visible or not reasoning:
        return VisibleReply(text=visible, thoughts=thoughts)

    reasoning_text, reasoning_thoughts = strip_thoughts(reasoning)
    for thought in reasoning_thoughts:
        log_block(LOGGER, "Model reasoning", thought)
    if reasoning_text:
        LOGGER.debug("Primary content empty; using reasoning channel as reply")
    return VisibleReply(
        text=reasoning_text,
        thoughts=thoughts + reasoning_thoughts,
        from_reasoning=bool(reasoning_text),
    )


def is_null_reply(text: str | None) -> bool:
    return (text or "").strip() == NULL_SENTINEL


def sanitize_reply(text: str | None) -> str:
    """Strip thought blocks and a trailing ``<NULL>`` marker from an outgoing reply."""
    if not text:
        return ""
    cleaned, _ = strip_thoughts(text)
    cleaned = _TRAILING_NULL_RE.sub("", cleaned)
    return cleaned.strip()
