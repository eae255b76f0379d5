"""Tests for concurrent tool dispatch."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from makeshift.ai.orchestration.tools import (
    ToolDefinition,
    ToolDispatcher,
    ToolRegistry,
    format_tool_result_content,
    last_non_tool_content,
    parse_tool_arguments,
)
from makeshift.ai.orchestration.types import Message, ParsedToolCall


def _call(name: str, args: dict[str, Any] | str | None = None, index: int = 0) -> ParsedToolCall:
    arguments = args if isinstance(args, str) else json.dumps(args or {})
    return ParsedToolCall(call_id=f"call-{index}", name=name, arguments=arguments, index=index)


@pytest.fixture
def conversation() -> list[Message]:
    return [
        Message.system("system"),
        Message.user("what time is it?"),
        Message.tool("earlier result", "call-x", name="old"),
    ]


@pytest.mark.asyncio
async def test_results_match_call_order_even_when_handlers_finish_out_of_order(conversation):
    async def slow(args, message, context):
        await asyncio.sleep(0.02)
        return "slow"

    async def fast(args, message, context):
        return "fast"

    dispatcher = ToolDispatcher(ToolRegistry([
        ToolDefinition(name="slow", description="", handler=slow),
        ToolDefinition(name="fast", description="", handler=fast),
    ]))

    results = await dispatcher.dispatch([_call("slow", index=0), _call("fast", index=1)], conversation)

    assert [result.content for result in results] == ["slow", "fast"]
    assert [result.tool_call_id for result in results] == ["call-0", "call-1"]
    assert all(result.role == "tool" for result in results)


@pytest.mark.asyncio
async def test_handlers_run_concurrently(conversation):
    started: list[str] = []
    gate = asyncio.Event()

    async def waiter(args, message, context):
        started.append(args["name"])
        if len(started) == 2:
            gate.set()
        await asyncio.wait_for(gate.wait(), timeout=1)
        return args["name"]

    dispatcher = ToolDispatcher(ToolRegistry([ToolDefinition(name="wait", description="", handler=waiter)]))

    results = await dispatcher.dispatch(
        [_call("wait", {"name": "a"}, 0), _call("wait", {"name": "b"}, 1)], conversation
    )

    assert [result.content for result in results] == ["a", "b"]


@pytest.mark.asyncio
async def test_unknown_tool_reports_missing_handler(conversation):
    dispatcher = ToolDispatcher(ToolRegistry())

    results = await dispatcher.dispatch([_call("nope")], conversation)

    assert len(results) == 1
    assert results[0].content == "No handler implemented for tool: nope"
    assert results[0].success is False


@pytest.mark.asyncio
async def test_failing_handler_becomes_error_result(conversation):
    def broken(args, message, context):
        raise RuntimeError("boom")

    def ok(args, message, context):
        return {"value": 1}

    dispatcher = ToolDispatcher(ToolRegistry([
        ToolDefinition(name="broken", description="", handler=broken),
        ToolDefinition(name="ok", description="", handler=ok),
    ]))

    results = await dispatcher.dispatch([_call("broken", index=0), _call("ok", index=1)], conversation)

    assert results[0].content == "Error executing tool broken: boom"
    assert results[0].success is False
    assert json.loads(results[1].content) == {"value": 1}


@pytest.mark.asyncio
async def test_invalid_argument_json_is_reported_per_call(conversation):
    dispatcher = ToolDispatcher(ToolRegistry([
        ToolDefinition(name="echo", description="", handler=lambda args, message, context: args),
    ]))

    results = await dispatcher.dispatch([_call("echo", "{not json")], conversation)

    assert results[0].content.startswith("Error executing tool echo: ")
    assert results[0].success is False


@pytest.mark.asyncio
async def test_handler_receives_original_message_and_context(conversation):
    seen: dict[str, Any] = {}
    context = object()

    def capture(args, message, ctx):
        seen.update(args=args, message=message, context=ctx)
        return None

    dispatcher = ToolDispatcher(ToolRegistry([ToolDefinition(name="capture", description="", handler=capture)]))

    results = await dispatcher.dispatch([_call("capture", {"x": 1})], conversation, context)

    assert seen == {"args": {"x": 1}, "message": "what time is it?", "context": context}
    assert results[0].content == "null"


@pytest.mark.asyncio
async def test_empty_batch():
    dispatcher = ToolDispatcher(ToolRegistry())

    assert await dispatcher.dispatch([], []) == []


def test_format_tool_result_content():
    assert format_tool_result_content(None) == "null"
    assert format_tool_result_content(True) == "true"
    assert format_tool_result_content(3) == "3"
    assert format_tool_result_content("text") == "text"
    assert format_tool_result_content([1, 2]) == "[\n  1,\n  2\n]"


def test_parse_tool_arguments():
    assert parse_tool_arguments("") == {}
    assert parse_tool_arguments('{"a": 1}') == {"a": 1}
    with pytest.raises(ValueError):
        parse_tool_arguments("[1]")


def test_last_non_tool_content_skips_tool_messages():
    assert last_non_tool_content([Message.user("hi"), Message.tool("r", "c")]) == "hi"
    assert last_non_tool_content([]) == ""
