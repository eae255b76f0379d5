"""Async completion client for OpenAI-compatible chat endpoints."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Sequence, cast

from openai import APITimeoutError, AsyncOpenAI
from openai.types.chat import (
    ChatCompletionMessageParam,
    ChatCompletionToolChoiceOptionParam,
    ChatCompletionToolParam,
)
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_none

from ..utils.logging import log_block
from .errors import CompletionTimeout
from .orchestration.types import Message

__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_MODELS",
    "ClientSettings",
    "CompletionClient",
    "CompletionResult",
    "ModelConfiguration",
    "ModelSelector",
    "next_model_index",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://integrate.api.nvidia.com/v1"


# -----------------------------------------------------------------------------
# Model selection
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ModelConfiguration:
    """Sampling parameters sent with every request to one model."""

    model: str
    temperature: float | None = 0.6
    top_p: float | None = None
    max_tokens: int | None = None
    streaming_enabled: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model, "stream": self.streaming_enabled}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.top_p is not None:
            payload["top_p"] = self.top_p
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
            "streaming_enabled": self.streaming_enabled,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ModelConfiguration":
        model = str(payload.get("model") or "").strip()
        if not model:
            raise ValueError("Model configuration requires a model name")
        return cls(
            model=model,
            temperature=payload.get("temperature"),
            top_p=payload.get("top_p"),
            max_tokens=payload.get("max_tokens"),
            streaming_enabled=bool(payload.get("streaming_enabled", False)),
        )


DEFAULT_MODELS: tuple[ModelConfiguration, ...] = (
    ModelConfiguration(
        model="nvidia/llama-3.1-nemotron-ultra-253b-v1",
        temperature=0.6,
        top_p=0.7,
        max_tokens=4096,
    ),
    ModelConfiguration(
        model="nvidia/llama-3.3-nemotron-super-49b-v1.5",
        temperature=0.6,
        top_p=0.95,
        max_tokens=65536,
    ),
)


def next_model_index(current: int, count: int) -> int:
    """Return the index that follows ``current`` in a round-robin over ``count`` models."""
    if count <= 0:
        raise ValueError("At least one model configuration is required")
    return (current + 1) % count


class ModelSelector:
    """Ordered model configurations with a single active entry."""

    def __init__(self, models: Sequence[ModelConfiguration], *, index: int = 0) -> None:
        if not models:
            raise ValueError("At least one model configuration is required")
        self._models = tuple(models)
        self._index = index % len(self._models)

    @property
    def models(self) -> tuple[ModelConfiguration, ...]:
        return self._models

    @property
    def index(self) -> int:
        return self._index

    @property
    def active(self) -> ModelConfiguration:
        return self._models[self._index]

    def advance(self) -> ModelConfiguration:
        """Rotate to the next configuration and return it."""
        self._index = next_model_index(self._index, len(self._models))
        return self.active

    def __len__(self) -> int:
        return len(self._models)


# -----------------------------------------------------------------------------
# Settings and results
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the completion client."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    models: Sequence[ModelConfiguration] = DEFAULT_MODELS
    request_timeout: float = 10.0
    switch_on_timeout: bool = False
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True, frozen=True)
class CompletionResult:
    """Normalized first choice of a chat completion."""

    content: str
    reasoning: str | None = None
    tool_calls: tuple[Dict[str, Any], ...] = ()
    model: str | None = None
    finish_reason: str | None = None
    usage: Mapping[str, Any] | None = field(default=None, compare=False)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class CompletionClient:
    """Issues chat completions with a wall-clock deadline and optional model rotation.

    When ``switch_on_timeout`` is enabled a timed-out request is retried once
    per configured model, advancing the selector before each retry. Any other
    failure propagates unchanged on the first attempt.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
        selector: ModelSelector | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._selector = selector or ModelSelector(settings.models)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def selector(self) -> ModelSelector:
        return self._selector

    async def complete(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        *,
        tools: Iterable[ChatCompletionToolParam] | None = None,
        tool_choice: ChatCompletionToolChoiceOptionParam | None = None,
        **overrides: Any,
    ) -> CompletionResult:
        """Request a completion for ``messages`` using the active model.

        Raises:
            CompletionTimeout: If every permitted attempt exceeded the deadline.
        """
        normalized = self._coerce_messages(messages)
        tool_list = list(tools) if tools else None

        async for attempt in self._retrying():
            with attempt:
                result = await self._complete_once(normalized, tool_list, tool_choice, overrides)
        return result

    def _retrying(self) -> AsyncRetrying:
        attempts = len(self._selector) if self._settings.switch_on_timeout else 1
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_none(),
            retry=retry_if_exception_type(CompletionTimeout),
            before_sleep=self._rotate_model,
        )

    def _rotate_model(self, retry_state: RetryCallState) -> None:
        previous = self._selector.active.model
        current = self._selector.advance().model
        LOGGER.warning(
            "Completion timed out after %ss on %s; switching to %s (attempt %d)",
            self._settings.request_timeout,
            previous,
            current,
            retry_state.attempt_number + 1,
        )

    async def _complete_once(
        self,
        messages: Sequence[ChatCompletionMessageParam],
        tools: Sequence[ChatCompletionToolParam] | None,
        tool_choice: ChatCompletionToolChoiceOptionParam | None,
        overrides: Mapping[str, Any],
    ) -> CompletionResult:
        configuration = self._selector.active
        payload = self._build_chat_payload(configuration, messages, tools, tool_choice, overrides)
        LOGGER.debug(
            "Requesting completion from %s with %d message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        timeout = self._settings.request_timeout
        try:
            return await asyncio.wait_for(self._request(payload), timeout=timeout)
        except (asyncio.TimeoutError, APITimeoutError) as exc:
            raise CompletionTimeout(timeout, payload["model"]) from exc

    async def _request(self, payload: Mapping[str, Any]) -> CompletionResult:
        response = await self._client.chat.completions.create(**payload)
        if payload.get("stream"):
            return await self._collect_stream(response)
        return self._to_result(response)

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _coerce_messages(
        self, messages: Iterable[Message | Mapping[str, Any]]
    ) -> List[ChatCompletionMessageParam]:
        normalized: List[ChatCompletionMessageParam] = []
        for message in messages:
            if isinstance(message, Message):
                normalized.append(message.to_chat_param())
            elif isinstance(message, MutableMapping):
                normalized.append(cast(ChatCompletionMessageParam, dict(message)))
            else:
                try:
                    normalized.append(cast(ChatCompletionMessageParam, dict(message)))
                except TypeError as exc:
                    raise TypeError("Messages must be Message instances or mappings") from exc
        if not normalized:
            raise ValueError("At least one message is required to request a completion")
        return normalized

    def _build_chat_payload(
        self,
        configuration: ModelConfiguration,
        messages: Sequence[ChatCompletionMessageParam],
        tools: Sequence[ChatCompletionToolParam] | None,
        tool_choice: ChatCompletionToolChoiceOptionParam | None,
        overrides: Mapping[str, Any],
    ) -> Dict[str, Any]:
        payload = configuration.to_payload()
        payload["messages"] = list(messages)
        if tools:
            payload["tools"] = list(tools)
            # Streamed tool-call deltas are not aggregated.
            payload["stream"] = False
        if tool_choice:
            payload["tool_choice"] = tool_choice
        for key, value in overrides.items():
            if value is not None:
                payload[key] = value
        return payload

    def _to_result(self, response: Any) -> CompletionResult:
        choices = getattr(response, "choices", None) or []
        usage = getattr(response, "usage", None)
        model = getattr(response, "model", None)
        if not choices:
            LOGGER.warning("Completion from %s contained no choices", model)
            return CompletionResult(content="", model=model, usage=_dump(usage))
        choice = choices[0]
        message = getattr(choice, "message", None)
        return CompletionResult(
            content=(getattr(message, "content", None) or "").strip(),
            reasoning=_reasoning_of(message),
            tool_calls=tuple(
                _tool_call_payload(call, index)
                for index, call in enumerate(getattr(message, "tool_calls", None) or ())
            ),
            model=model,
            finish_reason=getattr(choice, "finish_reason", None),
            usage=_dump(usage),
        )

    async def _collect_stream(self, stream: Any) -> CompletionResult:
        content: list[str] = []
        reasoning: list[str] = []
        model: str | None = None
        finish_reason: str | None = None
        async for chunk in stream:
            model = getattr(chunk, "model", None) or model
            for choice in getattr(chunk, "choices", None) or ():
                delta = getattr(choice, "delta", None)
                if getattr(delta, "content", None):
                    content.append(delta.content)
                thought = _reasoning_of(delta)
                if thought:
                    reasoning.append(thought)
                finish_reason = getattr(choice, "finish_reason", None) or finish_reason
        return CompletionResult(
            content="".join(content).strip(),
            reasoning="".join(reasoning) or None,
            model=model,
            finish_reason=finish_reason,
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Completion payload (unserializable): %s", payload)
        else:
            log_block(LOGGER, "Completion payload", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _reasoning_of(message: Any) -> str | None:
    if message is None:
        return None
    return getattr(message, "reasoning_content", None) or getattr(message, "reasoning", None)


def _tool_call_payload(call: Any, index: int) -> Dict[str, Any]:
    function = getattr(call, "function", None)
    return {
        "id": getattr(call, "id", None) or f"native-{index}",
        "type": getattr(call, "type", None) or "function",
        "function": {
            "name": getattr(function, "name", None),
            "arguments": getattr(function, "arguments", None) or "{}",
        },
    }


def _dump(value: Any) -> Mapping[str, Any] | None:
    if value is None:
        return None
    dump = getattr(value, "model_dump", None)
    if callable(dump):
        return dump()
    if isinstance(value, Mapping):
        return dict(value)
    return None
