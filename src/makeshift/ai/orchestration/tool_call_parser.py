"""Parsing of makeshift tool calls embedded in model replies.

Models are asked to request tools with self-closing pseudo-tags instead of the
native function-calling channel::

    Checking now. <get_weather latitude="51.5" longitude="-0.1"/>
    <tool name="web_search" query='python 3.13 release'/>

A single left-to-right pass finds every candidate tag; the text between tags
is kept as the leftover reply. Each tag is then decoded on its own, so one
malformed tag never hides its siblings.

The older JSON formats (``{"tool": ..., "args": {...}}`` either as the whole
reply or embedded in prose) are handled by :func:`parse_legacy_json_tool_call`
and only consulted when the caller opts in.
"""

from __future__ import annotations

import html
import json
import logging
import math
import re
import time
from typing import Any, Iterator, Mapping

from .types import ParsedToolCall, ParseResult

__all__ = [
    "GENERIC_TOOL_TAG",
    "MakeshiftTagError",
    "TAG_RE",
    "coerce_attribute_value",
    "decode_tag",
    "makeshift_call_id",
    "parse_makeshift_tool_calls",
    "parse_legacy_json_tool_call",
    "parse_tool_calls",
]

LOGGER = logging.getLogger(__name__)

# Wrapper tag whose ``name`` attribute carries the tool identity.
GENERIC_TOOL_TAG = "tool"

# Values at or above this length stay strings even when they look numeric.
_MAX_NUMERIC_LENGTH = 16

TAG_RE = re.compile(
    r"<(?P<name>[A-Za-z_]\w*)"
    r"(?P<body>(?:\s(?:[^<>\"']|\"[^\"]*\"|'[^']*')*?)?)"
    r"\s*/>"
)

_ATTRIBUTE_RE = re.compile(
    r"\s+(?P<key>[A-Za-z_][\w.:-]*)\s*=\s*(?:\"(?P<double>[^\"]*)\"|'(?P<single>[^']*)')"
)

_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*\n?(?P<body>.*?)```", re.IGNORECASE | re.DOTALL)


class MakeshiftTagError(ValueError):
    """Raised when a candidate tag cannot be decoded into a tool call."""


# -----------------------------------------------------------------------------
# Attribute coercion
# -----------------------------------------------------------------------------


def coerce_attribute_value(raw: str) -> Any:
    """Convert an attribute string into the most specific JSON-compatible value.

    Bracketed or braced values are parsed as JSON (retrying with single quotes
    swapped for double quotes), then booleans, then short numeric literals.
    Anything else is returned unchanged.
    """
    trimmed = raw.strip()
    if _is_structured(trimmed):
        for candidate in (trimmed, trimmed.replace("'", '"')):
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                continue

    lowered = trimmed.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False

    if len(trimmed) < _MAX_NUMERIC_LENGTH and _NUMBER_RE.fullmatch(trimmed):
        number = _to_number(trimmed)
        if number is not None:
            return number

    return raw


def _is_structured(value: str) -> bool:
    return (value.startswith("[") and value.endswith("]")) or (
        value.startswith("{") and value.endswith("}")
    )


def _to_number(value: str) -> int | float | None:
    if not any(marker in value for marker in ".eE"):
        return int(value)
    number = float(value)
    if math.isinf(number) or math.isnan(number):
        return None
    return number


# -----------------------------------------------------------------------------
# Tag decoding
# -----------------------------------------------------------------------------


def _decode_attributes(body: str) -> dict[str, str]:
    attributes: dict[str, str] = {}
    position = 0
    while True:
        match = _ATTRIBUTE_RE.match(body, position)
        if match is None:
            break
        key = match.group("key")
        if key in attributes:
            raise MakeshiftTagError(f"duplicate attribute '{key}'")
        value = match.group("double")
        if value is None:
            value = match.group("single")
        attributes[key] = html.unescape(value)
        position = match.end()
    remainder = body[position:]
    if remainder.strip():
        raise MakeshiftTagError(f"unexpected attribute text {remainder.strip()!r}")
    return attributes


def decode_tag(tag: str) -> tuple[str, dict[str, Any]]:
    """Decode a single self-closing tag into ``(tool_name, arguments)``.

    Raises:
        MakeshiftTagError: If the tag is not a well-formed self-closing element.
    """
    match = TAG_RE.fullmatch(tag.strip())
    if match is None:
        raise MakeshiftTagError("not a self-closing tag")
    name = match.group("name")
    attributes = _decode_attributes(match.group("body") or "")

    if name == GENERIC_TOOL_TAG:
        wrapped = attributes.pop("name", "").strip()
        if not wrapped:
            raise MakeshiftTagError("generic tool tag is missing its name attribute")
        name = wrapped

    arguments = {key: coerce_attribute_value(value) for key, value in attributes.items()}
    return name, arguments


def makeshift_call_id(index: int, *, now: float | None = None) -> str:
    """Build a call id from a millisecond timestamp and the call's ordinal."""
    timestamp = time.time() if now is None else now
    return f"makeshift-{int(timestamp * 1000)}-{index}"


# -----------------------------------------------------------------------------
# Tag parsing
# -----------------------------------------------------------------------------


def parse_makeshift_tool_calls(text: str, *, now: float | None = None) -> ParseResult:
    """Extract every self-closing tool tag from ``text``.

    Args:
        text: The model's visible reply.
        now: Timestamp used for call ids; defaults to the current time.

    Returns:
        The decoded calls in order of appearance, plus the text between them.
    """
    if not text:
        return ParseResult.empty("")

    timestamp = time.time() if now is None else now
    pieces: list[str] = []
    calls: list[ParsedToolCall] = []
    cursor = 0
    for match in TAG_RE.finditer(text):
        pieces.append(text[cursor:match.start()])
        cursor = match.end()
        tag = match.group(0)
        try:
            name, arguments = decode_tag(tag)
        except MakeshiftTagError as exc:
            LOGGER.warning("Skipping malformed tool tag %r: %s", tag, exc)
            continue
        index = len(calls)
        calls.append(
            ParsedToolCall(
                call_id=makeshift_call_id(index, now=timestamp),
                name=name,
                arguments=json.dumps(arguments, ensure_ascii=False),
                index=index,
            )
        )
    pieces.append(text[cursor:])

    leftover = "".join(pieces).strip()
    if not calls:
        return ParseResult(has_tools=False, tool_calls=None, leftover_text=leftover)
    LOGGER.debug("Parsed %d makeshift tool call(s): %s", len(calls), [call.name for call in calls])
    return ParseResult(has_tools=True, tool_calls=tuple(calls), leftover_text=leftover)


# -----------------------------------------------------------------------------
# Legacy JSON formats
# -----------------------------------------------------------------------------


def _legacy_call(payload: Any) -> tuple[str, Mapping[str, Any]] | None:
    if not isinstance(payload, dict):
        return None
    name = payload.get("tool")
    args = payload.get("args")
    if not isinstance(name, str) or not name.strip() or not isinstance(args, dict):
        return None
    return name.strip(), args


def _try_load(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _iter_brace_spans(text: str) -> Iterator[tuple[int, int]]:
    """Yield ``(start, end)`` for each top-level balanced ``{...}`` span."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for position, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"' and depth:
            in_string = True
        elif char == "{":
            if depth == 0:
                start = position
            depth += 1
        elif char == "}" and depth:
            depth -= 1
            if depth == 0:
                yield start, position + 1


def parse_legacy_json_tool_call(text: str, *, now: float | None = None) -> ParseResult:
    """Recognise a single ``{"tool": name, "args": {...}}`` request.

    The whole reply is tried first, then fenced JSON blocks, then the first
    balanced brace span carrying both keys. At most one call is returned; the
    JSON span is removed from the leftover text.
    """
    if not text or not text.strip():
        return ParseResult.empty("")

    found: tuple[str, Mapping[str, Any]] | None = None
    span: tuple[int, int] | None = None

    stripped = text.strip()
    found = _legacy_call(_try_load(stripped))
    if found is not None:
        span = (0, len(text))

    if found is None:
        for match in _FENCED_JSON_RE.finditer(text):
            found = _legacy_call(_try_load(match.group("body").strip()))
            if found is not None:
                span = match.span()
                break

    if found is None:
        for start, end in _iter_brace_spans(text):
            found = _legacy_call(_try_load(text[start:end]))
            if found is not None:
                span = (start, end)
                break

    if found is None or span is None:
        return ParseResult.empty(text)

    name, args = found
    timestamp = time.time() if now is None else now
    call = ParsedToolCall(
        call_id=f"makeshift-{int(timestamp * 1000)}",
        name=name,
        arguments=json.dumps(args, ensure_ascii=False),
        index=0,
    )
    leftover = (text[:span[0]] + text[span[1]:]).strip()
    LOGGER.debug("Parsed legacy JSON tool call: %s", name)
    return ParseResult(has_tools=True, tool_calls=(call,), leftover_text=leftover)


def parse_tool_calls(
    text: str,
    *,
    legacy_json_fallback: bool = False,
    now: float | None = None,
) -> ParseResult:
    """Parse tag calls, optionally falling back to the legacy JSON formats."""
    result = parse_makeshift_tool_calls(text, now=now)
    if result.has_tools or not legacy_json_fallback:
        return result
    legacy = parse_legacy_json_tool_call(text, now=now)
    if legacy.has_tools:
        return legacy
    return result
