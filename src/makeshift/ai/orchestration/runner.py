"""Turn Runner: drives completions, tool dispatch and follow-up turns.

One call to :meth:`TurnRunner.run` handles a single trigger::

    AWAITING_COMPLETION -> PARSING_REPLY -> DONE
                                 |
                                 v
                            DISPATCHING -> AWAITING_COMPLETION

Intermediate assistant replies and tool results only ever go into a local
copy of the message list; the caller's history is left untouched.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence

from ..errors import TIMEOUT_MESSAGE, CompletionTimeout
from .reply import extract_visible_text
from .tool_call_parser import parse_tool_calls
from .tools.dispatcher import ToolDispatcher
from .tools.types import AmbientContext
from .types import Message, ParsedToolCall, ParseResult, ToolResult, TurnOutput

if TYPE_CHECKING:
    from ..client import CompletionResult

__all__ = [
    "CompletionBackend",
    "RunnerConfig",
    "TurnRunner",
    "TurnState",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Protocols and configuration
# -----------------------------------------------------------------------------


class CompletionBackend(Protocol):
    """What the runner needs from a completion client."""

    async def complete(
        self,
        messages: Sequence[Message | Mapping[str, Any]],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: Any = None,
        **overrides: Any,
    ) -> "CompletionResult":
        ...


class TurnState(enum.Enum):
    AWAITING_COMPLETION = "awaiting_completion"
    PARSING_REPLY = "parsing_reply"
    DISPATCHING = "dispatching"
    DONE = "done"


@dataclass(slots=True, frozen=True)
class RunnerConfig:
    """Configuration for the turn runner.

    Attributes:
        max_iterations: Maximum dispatch rounds before the loop stops.
        legacy_json_fallback: Also accept ``{"tool": ..., "args": ...}`` replies.
        native_tool_calls: Offer tools through the native function-calling channel first.
    """

    max_iterations: int = 8
    legacy_json_fallback: bool = False
    native_tool_calls: bool = False


@dataclass(slots=True, frozen=True)
class _Reply:
    text: str
    parsed: ParseResult


# -----------------------------------------------------------------------------
# Turn Runner
# -----------------------------------------------------------------------------


class TurnRunner:
    """Runs the completion/dispatch loop for one conversation snapshot.

    Example:
        >>> runner = TurnRunner(client, dispatcher, system_prompt="Be brief.")
        >>> reply = await runner.respond([Message.user("What's the weather?")])
    """

    def __init__(
        self,
        client: CompletionBackend,
        dispatcher: ToolDispatcher,
        *,
        system_prompt: str = "",
        config: RunnerConfig | None = None,
    ) -> None:
        self._client = client
        self._dispatcher = dispatcher
        self._system_prompt = system_prompt
        self._config = config or RunnerConfig()
        self._native_tools_enabled = self._config.native_tool_calls

    @property
    def config(self) -> RunnerConfig:
        return self._config

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def native_tools_enabled(self) -> bool:
        return self._native_tools_enabled

    async def respond(
        self,
        history: Sequence[Message],
        *,
        context: AmbientContext | None = None,
    ) -> str:
        """Return the final reply text for ``history``; empty means no reply."""
        output = await self.run(history, context=context)
        return output.response

    async def run(
        self,
        history: Sequence[Message],
        *,
        context: AmbientContext | None = None,
    ) -> TurnOutput:
        """Execute the turn loop.

        Returns:
            TurnOutput with the final text and every tool result produced.

        Raises:
            Exception: Any non-timeout failure from the completion client.
        """
        messages: list[Message] = []
        if self._system_prompt:
            messages.append(Message.system(self._system_prompt))
        messages.extend(history)

        try:
            return await self._run_loop(messages, history, context)
        except CompletionTimeout as exc:
            LOGGER.warning("Turn aborted: %s", exc)
            _enter(TurnState.DONE)
            return TurnOutput(response=TIMEOUT_MESSAGE, timed_out=True)

    async def _run_loop(
        self,
        messages: list[Message],
        history: Sequence[Message],
        context: AmbientContext | None,
    ) -> TurnOutput:
        max_iterations = max(0, self._config.max_iterations)
        all_results: list[ToolResult] = []
        leftovers: list[str] = []
        iteration = 0

        reply = await self._first_turn(messages)
        parsed = reply.parsed

        while parsed.has_tools:
            if iteration >= max_iterations:
                LOGGER.warning(
                    "Reached max tool iterations (%d); %d call(s) left undispatched",
                    max_iterations,
                    len(parsed.tool_calls or ()),
                )
                leftovers.append(parsed.leftover_text)
                _enter(TurnState.DONE)
                return TurnOutput(
                    response=_final_answer(leftovers),
                    tool_results=tuple(all_results),
                    iterations=iteration,
                    max_iterations_reached=True,
                )

            iteration += 1
            calls = parsed.tool_calls or ()
            LOGGER.debug("Tool iteration %d with %d call(s)", iteration, len(calls))
            _enter(TurnState.DISPATCHING)
            # Handlers see the triggering request, not earlier tag replies.
            results = await self._dispatcher.dispatch(calls, history, context)
            all_results.extend(results)
            leftovers.append(parsed.leftover_text)

            # Every call is echoed as a structured call so the tool messages have a parent.
            echoed = tuple(call.to_openai_tool_call() for call in calls)
            messages.append(Message.assistant(reply.text, tool_calls=echoed))
            messages.extend(result.to_message() for result in results)

            reply = await self._follow_up_turn(messages)
            parsed = reply.parsed

        leftovers.append(parsed.leftover_text)
        _enter(TurnState.DONE)
        return TurnOutput(
            response=_final_answer(leftovers),
            tool_results=tuple(all_results),
            iterations=iteration,
        )

    async def _first_turn(self, messages: Sequence[Message]) -> _Reply:
        if self._native_tools_enabled:
            native = await self._try_native_turn(messages)
            if native is not None:
                return native
        return await self._follow_up_turn(messages)

    async def _follow_up_turn(self, messages: Sequence[Message]) -> _Reply:
        _enter(TurnState.AWAITING_COMPLETION)
        result = await self._client.complete(messages)
        return self._parse(result)

    async def _try_native_turn(self, messages: Sequence[Message]) -> _Reply | None:
        tools = self._dispatcher.registry.get_openai_tools()
        _enter(TurnState.AWAITING_COMPLETION)
        try:
            result = await self._client.complete(messages, tools=tools, tool_choice="auto")
        except CompletionTimeout:
            raise
        except Exception as exc:
            LOGGER.warning("Native tool calling failed; switching to makeshift tags: %s", exc)
            self._native_tools_enabled = False
            return None
        if not result.tool_calls:
            return self._parse(result)
        calls = tuple(
            ParsedToolCall(
                call_id=str(call.get("id") or f"native-{index}"),
                name=str(call["function"]["name"]),
                arguments=str(call["function"].get("arguments") or "{}"),
                index=index,
            )
            for index, call in enumerate(result.tool_calls)
        )
        visible = extract_visible_text(result.content, result.reasoning).text
        return _Reply(
            text=visible,
            parsed=ParseResult(has_tools=True, tool_calls=calls, leftover_text=visible),
        )

    def _parse(self, result: "CompletionResult") -> _Reply:
        _enter(TurnState.PARSING_REPLY)
        visible = extract_visible_text(result.content, result.reasoning).text
        parsed = parse_tool_calls(visible, legacy_json_fallback=self._config.legacy_json_fallback)
        return _Reply(text=visible, parsed=parsed)


def _enter(state: TurnState) -> None:
    LOGGER.debug("Turn state -> %s", state.value)


def _final_answer(leftovers: Sequence[str]) -> str:
    """Return the newest non-empty leftover, walking back through dispatching turns."""
    for text in reversed(leftovers):
        if text:
            return text
    return ""
