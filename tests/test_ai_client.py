"""Tests for the OpenAI-compatible completion client."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Callable, Iterable, cast

import httpx
import pytest
from openai import APITimeoutError, AsyncOpenAI

from makeshift.ai.client import (
    ClientSettings,
    CompletionClient,
    ModelConfiguration,
    ModelSelector,
    next_model_index,
)
from makeshift.ai.errors import CompletionTimeout
from makeshift.ai.orchestration.types import Message


def _response(
    content: str | None = "hello",
    *,
    reasoning: str | None = None,
    tool_calls: list[SimpleNamespace] | None = None,
    model: str = "fake-model",
) -> SimpleNamespace:
    message = SimpleNamespace(content=content, reasoning_content=reasoning, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason="stop")],
        model=model,
        usage=None,
    )


class _FakeStream:
    def __init__(self, chunks: Iterable[SimpleNamespace]):
        self._iterator = iter(list(chunks))

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> SimpleNamespace:
        try:
            return next(self._iterator)
        except StopIteration as exc:
            raise StopAsyncIteration from exc


class _FakeCompletions:
    def __init__(self, handler: Callable[[dict[str, Any]], Any]):
        self._handler = handler
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        result = self._handler(kwargs)
        if asyncio.iscoroutine(result):
            return await result
        return result


class _FakeOpenAI:
    def __init__(self, handler: Callable[[dict[str, Any]], Any]):
        self.completions = _FakeCompletions(handler)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def _client(
    handler: Callable[[dict[str, Any]], Any],
    *,
    models: tuple[ModelConfiguration, ...] = (ModelConfiguration(model="primary"),),
    timeout: float = 1.0,
    switch_on_timeout: bool = False,
) -> tuple[CompletionClient, _FakeOpenAI]:
    fake = _FakeOpenAI(handler)
    settings = ClientSettings(
        api_key="test",
        models=models,
        request_timeout=timeout,
        switch_on_timeout=switch_on_timeout,
    )
    return CompletionClient(settings, client=cast(AsyncOpenAI, fake)), fake


async def _hang(_payload: dict[str, Any]) -> SimpleNamespace:
    await asyncio.sleep(5)
    return _response()


MESSAGES = [Message.system("sys"), Message.user("hi")]
TWO_MODELS = (ModelConfiguration(model="slow"), ModelConfiguration(model="fast"))


@pytest.mark.asyncio
async def test_complete_normalizes_first_choice():
    client, fake = _client(lambda _payload: _response("  hi there \n", reasoning="pondering"))

    result = await client.complete(MESSAGES)

    assert result.content == "hi there"
    assert result.reasoning == "pondering"
    assert result.model == "fake-model"
    assert result.finish_reason == "stop"
    assert result.has_tool_calls is False
    payload = fake.completions.calls[0]
    assert payload["model"] == "primary"
    assert payload["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
    ]


@pytest.mark.asyncio
async def test_request_overrides_overlay_model_payload():
    models = (ModelConfiguration(model="primary", temperature=0.6, top_p=0.7, max_tokens=100),)
    client, fake = _client(lambda _payload: _response(), models=models)

    await client.complete(MESSAGES, temperature=0.1, top_p=None)

    payload = fake.completions.calls[0]
    assert payload["temperature"] == 0.1
    assert payload["top_p"] == 0.7
    assert payload["max_tokens"] == 100
    assert payload["stream"] is False


@pytest.mark.asyncio
async def test_native_tool_calls_are_normalized_and_disable_streaming():
    call = SimpleNamespace(
        id="call-1",
        type="function",
        function=SimpleNamespace(name="get_weather", arguments='{"latitude": 1}'),
    )
    models = (ModelConfiguration(model="primary", streaming_enabled=True),)
    client, fake = _client(lambda _payload: _response("", tool_calls=[call]), models=models)
    tools = [{"type": "function", "function": {"name": "get_weather", "parameters": {}}}]

    result = await client.complete(MESSAGES, tools=tools, tool_choice="auto")

    assert result.tool_calls == (
        {
            "id": "call-1",
            "type": "function",
            "function": {"name": "get_weather", "arguments": '{"latitude": 1}'},
        },
    )
    payload = fake.completions.calls[0]
    assert payload["stream"] is False
    assert payload["tool_choice"] == "auto"
    assert payload["tools"] == tools


@pytest.mark.asyncio
async def test_native_tool_call_without_id_gets_positional_id():
    calls = [
        SimpleNamespace(id="call-1", type="function", function=SimpleNamespace(name="a", arguments="{}")),
        SimpleNamespace(id=None, type=None, function=SimpleNamespace(name="b", arguments=None)),
    ]
    client, _ = _client(lambda _payload: _response("", tool_calls=calls))

    result = await client.complete(MESSAGES, tools=[], tool_choice="auto")

    assert [call["id"] for call in result.tool_calls] == ["call-1", "native-1"]
    assert result.tool_calls[1]["type"] == "function"
    assert result.tool_calls[1]["function"]["arguments"] == "{}"


@pytest.mark.asyncio
async def test_streamed_deltas_are_aggregated():
    def _chunk(content: str | None, reasoning: str | None = None, finish: str | None = None):
        delta = SimpleNamespace(content=content, reasoning_content=reasoning)
        return SimpleNamespace(model="streamer", choices=[SimpleNamespace(delta=delta, finish_reason=finish)])

    chunks = [_chunk(None, "thinking "), _chunk("Hel"), _chunk("lo "), _chunk(None, finish="stop")]
    models = (ModelConfiguration(model="primary", streaming_enabled=True),)
    client, fake = _client(lambda _payload: _FakeStream(chunks), models=models)

    result = await client.complete(MESSAGES)

    assert fake.completions.calls[0]["stream"] is True
    assert result.content == "Hello"
    assert result.reasoning == "thinking "
    assert result.model == "streamer"
    assert result.finish_reason == "stop"


@pytest.mark.asyncio
async def test_timeout_without_rotation_raises_once():
    client, fake = _client(_hang, models=TWO_MODELS, timeout=0.01)

    with pytest.raises(CompletionTimeout) as excinfo:
        await client.complete(MESSAGES)

    assert excinfo.value.model == "slow"
    assert len(fake.completions.calls) == 1
    assert client.selector.index == 0


@pytest.mark.asyncio
async def test_timeout_rotates_to_next_model_when_enabled():
    def handler(payload: dict[str, Any]) -> Any:
        if payload["model"] == "slow":
            return _hang(payload)
        return _response("from fast", model="fast")

    client, fake = _client(handler, models=TWO_MODELS, timeout=0.01, switch_on_timeout=True)

    result = await client.complete(MESSAGES)

    assert result.content == "from fast"
    assert [call["model"] for call in fake.completions.calls] == ["slow", "fast"]
    assert client.selector.active.model == "fast"


@pytest.mark.asyncio
async def test_rotation_gives_each_model_one_attempt():
    client, fake = _client(_hang, models=TWO_MODELS, timeout=0.01, switch_on_timeout=True)

    with pytest.raises(CompletionTimeout):
        await client.complete(MESSAGES)

    assert [call["model"] for call in fake.completions.calls] == ["slow", "fast"]


@pytest.mark.asyncio
async def test_sdk_timeout_is_reported_as_completion_timeout():
    def handler(_payload: dict[str, Any]) -> Any:
        raise APITimeoutError(request=httpx.Request("POST", "https://example.invalid/v1"))

    client, _ = _client(handler)

    with pytest.raises(CompletionTimeout):
        await client.complete(MESSAGES)


@pytest.mark.asyncio
async def test_other_errors_propagate_without_rotation():
    def handler(_payload: dict[str, Any]) -> Any:
        raise RuntimeError("server exploded")

    client, fake = _client(handler, models=TWO_MODELS, switch_on_timeout=True)

    with pytest.raises(RuntimeError, match="server exploded"):
        await client.complete(MESSAGES)

    assert len(fake.completions.calls) == 1
    assert client.selector.index == 0


@pytest.mark.asyncio
async def test_empty_message_list_is_rejected():
    client, _ = _client(lambda _payload: _response())

    with pytest.raises(ValueError):
        await client.complete([])


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client():
    client, fake = _client(lambda _payload: _response())

    await client.aclose()

    assert fake.closed is True


def test_next_model_index_wraps_around():
    assert next_model_index(0, 2) == 1
    assert next_model_index(1, 2) == 0
    assert next_model_index(0, 1) == 0
    with pytest.raises(ValueError):
        next_model_index(0, 0)


def test_model_selector_rotates():
    selector = ModelSelector(TWO_MODELS)

    assert selector.active.model == "slow"
    assert selector.advance().model == "fast"
    assert selector.advance().model == "slow"


def test_model_configuration_round_trips_through_dict():
    config = ModelConfiguration(model="m", temperature=0.2, top_p=None, max_tokens=10)

    assert ModelConfiguration.from_dict(config.to_dict()) == config
    with pytest.raises(ValueError):
        ModelConfiguration.from_dict({"temperature": 0.1})
