"""Tests for the turn runner's completion/dispatch loop."""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from makeshift.ai.client import CompletionResult
from makeshift.ai.errors import TIMEOUT_MESSAGE, CompletionTimeout
from makeshift.ai.orchestration import Message, RunnerConfig, TurnRunner
from makeshift.ai.orchestration.tools import ToolDefinition, ToolDispatcher, ToolRegistry


class MockClient:
    """Scripted completion backend; each entry is a result or an exception."""

    def __init__(self, script: Sequence[CompletionResult | BaseException | str]):
        self._script = list(script)
        self.requests: list[dict[str, Any]] = []

    async def complete(self, messages, *, tools=None, tool_choice=None, **overrides):
        self.requests.append({"messages": list(messages), "tools": tools, "tool_choice": tool_choice})
        if not self._script:
            raise AssertionError("completion requested more times than scripted")
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return CompletionResult(content=item)
        return item


def _registry() -> ToolRegistry:
    return ToolRegistry([
        ToolDefinition(
            name="get_current_time",
            description="Get the current time",
            handler=lambda args, message, context: "Current time: noon",
        ),
    ])


def _runner(client: MockClient, **config: Any) -> TurnRunner:
    return TurnRunner(
        client,
        ToolDispatcher(_registry()),
        system_prompt="You are helpful.",
        config=RunnerConfig(**config),
    )


HISTORY = [Message.user("what time is it?")]


@pytest.mark.asyncio
async def test_reply_without_tags_is_returned_verbatim():
    client = MockClient(["  Hello there!  "])

    assert await _runner(client).respond(HISTORY) == "Hello there!"
    assert len(client.requests) == 1
    first = client.requests[0]["messages"]
    assert first[0] == Message.system("You are helpful.")
    assert first[1:] == HISTORY


@pytest.mark.asyncio
async def test_tool_results_are_fed_back_before_final_answer():
    client = MockClient(["Checking. <get_current_time/>", "It is noon."])

    output = await _runner(client).run(HISTORY)

    assert output.response == "It is noon."
    assert output.iterations == 1
    assert [result.content for result in output.tool_results] == ["Current time: noon"]
    follow_up = client.requests[1]["messages"]
    echoed = follow_up[-2]
    assert echoed.role == "assistant"
    assert echoed.content == "Checking. <get_current_time/>"
    assert echoed.tool_calls is not None
    assert echoed.tool_calls[0]["id"] == output.tool_results[0].tool_call_id
    assert echoed.tool_calls[0]["function"] == {"name": "get_current_time", "arguments": "{}"}
    tool_message = follow_up[-1]
    assert tool_message.role == "tool"
    assert tool_message.content == "Current time: noon"
    assert tool_message.name == "get_current_time"
    assert tool_message.tool_call_id == output.tool_results[0].tool_call_id


@pytest.mark.asyncio
async def test_empty_follow_up_falls_back_to_dispatching_leftover():
    client = MockClient(["Let me look. <get_current_time/>", ""])

    assert await _runner(client).respond(HISTORY) == "Let me look."


@pytest.mark.asyncio
async def test_reply_of_only_tags_with_empty_follow_up_is_silent():
    client = MockClient(["<get_current_time/>", "   "])

    assert await _runner(client).respond(HISTORY) == ""


@pytest.mark.asyncio
async def test_timeout_resolves_to_timeout_message():
    client = MockClient([CompletionTimeout(10.0, "m")])

    output = await _runner(client).run(HISTORY)

    assert output.response == TIMEOUT_MESSAGE == "The AI has timed out."
    assert output.timed_out is True


@pytest.mark.asyncio
async def test_timeout_during_follow_up_also_resolves_to_timeout_message():
    client = MockClient(["<get_current_time/>", CompletionTimeout(10.0)])

    assert await _runner(client).respond(HISTORY) == TIMEOUT_MESSAGE


@pytest.mark.asyncio
async def test_other_completion_errors_propagate():
    client = MockClient([RuntimeError("endpoint down")])

    with pytest.raises(RuntimeError, match="endpoint down"):
        await _runner(client).respond(HISTORY)


@pytest.mark.asyncio
async def test_loop_stops_after_max_iterations():
    client = MockClient(["<get_current_time/> still going"])

    output = await _runner(client, max_iterations=2).run(HISTORY)

    assert output.max_iterations_reached is True
    assert output.iterations == 2
    assert len(output.tool_results) == 2
    assert len(client.requests) == 3
    assert output.response == "still going"


@pytest.mark.asyncio
async def test_history_is_not_mutated():
    history = list(HISTORY)
    client = MockClient(["<get_current_time/>", "done"])

    await _runner(client).respond(history)

    assert history == HISTORY


@pytest.mark.asyncio
async def test_reasoning_channel_used_when_content_empty():
    client = MockClient([CompletionResult(content="", reasoning="hmm, easy</think>Answer")])

    assert await _runner(client).respond(HISTORY) == "Answer"


@pytest.mark.asyncio
async def test_legacy_json_requires_opt_in():
    legacy = '{"tool": "get_current_time", "args": {}}'

    plain = await _runner(MockClient([legacy])).respond(HISTORY)
    client = MockClient([legacy, "It is noon."])
    opted_in = await _runner(client, legacy_json_fallback=True).respond(HISTORY)

    assert plain == legacy
    assert opted_in == "It is noon."


@pytest.mark.asyncio
async def test_native_tool_calls_are_dispatched_and_threaded():
    native = CompletionResult(
        content="",
        tool_calls=(
            {
                "id": "native-1",
                "type": "function",
                "function": {"name": "get_current_time", "arguments": "{}"},
            },
        ),
    )
    client = MockClient([native, "It is noon."])
    runner = _runner(client, native_tool_calls=True)

    assert await runner.respond(HISTORY) == "It is noon."
    assert client.requests[0]["tool_choice"] == "auto"
    assert client.requests[0]["tools"][0]["function"]["name"] == "get_current_time"
    assert client.requests[1]["tools"] is None
    follow_up = client.requests[1]["messages"]
    assert follow_up[-2].tool_calls == native.tool_calls
    assert follow_up[-1].tool_call_id == "native-1"


@pytest.mark.asyncio
async def test_native_failure_falls_back_to_tags_for_good():
    client = MockClient([RuntimeError("tools unsupported"), "plain answer", "second answer"])
    runner = _runner(client, native_tool_calls=True)

    assert await runner.respond(HISTORY) == "plain answer"
    assert runner.native_tools_enabled is False
    assert await runner.respond(HISTORY) == "second answer"
    assert [request["tools"] for request in client.requests] == [
        client.requests[0]["tools"],
        None,
        None,
    ]


@pytest.mark.asyncio
async def test_handlers_see_the_triggering_request_on_every_iteration():
    seen: list[str] = []

    def echo(args, message, context):
        seen.append(message)
        return f"echo {args['a']}"

    registry = ToolRegistry([ToolDefinition(name="echo", description="Echo", handler=echo)])
    client = MockClient(['<echo a="1"/>', 'again <echo a="2"/>', "done"])
    runner = TurnRunner(client, ToolDispatcher(registry), system_prompt="sys")

    output = await runner.run([Message.user("draw me a cat")])

    assert output.response == "done"
    assert output.iterations == 2
    assert seen == ["draw me a cat", "draw me a cat"]


@pytest.mark.asyncio
async def test_native_call_without_id_keeps_ids_consistent():
    native = CompletionResult(
        content="",
        tool_calls=(
            {
                "id": None,
                "type": "function",
                "function": {"name": "get_current_time", "arguments": "{}"},
            },
        ),
    )
    client = MockClient([native, "It is noon."])

    output = await _runner(client, native_tool_calls=True).run(HISTORY)

    follow_up = client.requests[1]["messages"]
    assert follow_up[-2].tool_calls[0]["id"] == "native-0"
    assert follow_up[-1].tool_call_id == "native-0"
    assert output.tool_results[0].tool_call_id == "native-0"
