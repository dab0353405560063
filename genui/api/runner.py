"""Agent runner -- the multi-step streaming tool loop.

Each step sends the conversation to the completions endpoint, decodes the
streamed answer (forwarding text and partial tool calls to the caller as
they arrive), then dispatches the completed tool calls one by one and
feeds their results back for the next step. The loop stops when a step
makes no tool calls ("stop") or after max_steps steps ("length").

run() returns an AgentStream right away: the events are produced lazily
while the caller iterates, and the final text, tool results and usage
are Deferred values resolved exactly once when the run ends, however it
ends.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from genui.api.decoder import StreamDecoder, Usage
from genui.api.prompts import AgentContext, build_system_prompt
from genui.api.tools import ToolDispatcher
from genui.api.transport import ChatTransport, is_auth_error
from genui.config import Settings
from genui.conversation import (
    ConversationHistory,
    ConversationTurn,
    ToolCallDescriptor,
    ToolResultDescriptor,
)
from genui.markup import parse_tool_arguments
from genui.utils import Deferred

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """What one step produced; carried on its finish-step event."""

    step_index: int
    text: str = ""
    tool_calls: tuple[ToolCallDescriptor, ...] = ()
    usage: Usage = field(default_factory=Usage)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepIndex": self.step_index,
            "text": self.text,
            "toolCalls": [
                {"toolCallId": c.tool_call_id, "toolName": c.tool_name} for c in self.tool_calls
            ],
            "usage": self.usage.to_dict(),
        }


@dataclass
class StreamEvent:
    """A single caller-facing event of an agent run."""

    type: str  # text-delta, tool-call, tool-input-delta, tool-result, finish-step, finish, error
    text: str = ""
    tool_call_id: str = ""
    tool_name: str = ""
    delta: str = ""
    output: Any = None
    is_error: bool = False
    step: StepResult | None = None
    finish_reason: str = ""
    error: str = ""
    auth: bool = False

    def to_dict(self) -> dict[str, Any]:
        """JSON payload for the SSE surface (camelCase keys)."""
        data: dict[str, Any] = {"type": self.type}
        if self.type == "text-delta":
            data["text"] = self.text
        elif self.type in ("tool-call", "tool-input-delta", "tool-result"):
            data["toolCallId"] = self.tool_call_id
            data["toolName"] = self.tool_name
            if self.type == "tool-input-delta":
                data["delta"] = self.delta
            elif self.type == "tool-result":
                data["output"] = self.output
                data["isError"] = self.is_error
        elif self.type == "finish-step" and self.step is not None:
            data["step"] = self.step.to_dict()
        elif self.type == "finish":
            data["finishReason"] = self.finish_reason
        elif self.type == "error":
            data["error"] = self.error
            data["auth"] = self.auth
        return data


class AgentStream:
    """Event stream of one run plus its three deferred results.

    Iterate it for the events; await `text`, `tool_results` and `usage`
    for the final values.
    """

    def __init__(
        self,
        events: AsyncGenerator[StreamEvent, None],
        text: Deferred[str],
        tool_results: Deferred[list[dict[str, Any]]],
        usage: Deferred[Usage],
    ) -> None:
        self.events = events
        self.text = text
        self.tool_results = tool_results
        self.usage = usage

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self.events

    async def aclose(self) -> None:
        """Abandon the run. Already dispatched tool calls are not undone."""
        await self.events.aclose()
        # A generator closed before its first step never reaches its finally block
        self.text.resolve("")
        self.tool_results.resolve([])
        self.usage.resolve(Usage())


@dataclass
class _RunState:
    """Accumulators of one run."""

    history: ConversationHistory
    turns: list[ConversationTurn]
    text: str = ""
    results: list[ToolResultDescriptor] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    committed: bool = False

    def commit(self) -> None:
        if not self.committed:
            self.committed = True
            self.history.extend(self.turns)


class AgentRunner:
    """Runs the streaming tool loop against a ChatTransport."""

    def __init__(self, settings: Settings, transport: ChatTransport) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def max_steps(self) -> int:
        return self._settings.max_steps

    def run(
        self,
        prompt: str,
        history: ConversationHistory,
        dispatcher: ToolDispatcher,
        context: AgentContext | None = None,
        history_text: str | None = None,
    ) -> AgentStream:
        """Start a run for `prompt`.

        `history` receives the run's turns when it ends; `history_text`
        replaces the prompt in history when given (e.g. for window events).
        """
        text: Deferred[str] = Deferred()
        tool_results: Deferred[list[dict[str, Any]]] = Deferred()
        usage: Deferred[Usage] = Deferred()
        events = self._run(
            prompt, history, dispatcher, context, history_text, text, tool_results, usage
        )
        return AgentStream(events, text, tool_results, usage)

    async def _run(
        self,
        prompt: str,
        history: ConversationHistory,
        dispatcher: ToolDispatcher,
        context: AgentContext | None,
        history_text: str | None,
        text: Deferred[str],
        tool_results: Deferred[list[dict[str, Any]]],
        usage: Deferred[Usage],
    ) -> AsyncGenerator[StreamEvent, None]:
        state = _RunState(history=history, turns=[ConversationTurn.user(history_text or prompt)])

        def settle(final_text: str, results: list[dict[str, Any]], final_usage: Usage) -> None:
            text.resolve(final_text)
            tool_results.resolve(results)
            usage.resolve(final_usage)
            state.commit()

        try:
            messages = history.to_messages(
                build_system_prompt(context),
                prompt,
                max_messages=self._settings.history_max_messages,
            )
            tools = dispatcher.tool_definitions()

            for step in range(self.max_steps):
                decoder = StreamDecoder(step)
                async with self._transport.open_stream(messages=messages, tools=tools) as stream:
                    async for decoded in decoder.decode(stream):
                        if decoded.kind == "text":
                            state.text += decoded.text
                            yield StreamEvent(type="text-delta", text=decoded.text)
                        elif decoded.kind == "tool-start":
                            yield StreamEvent(
                                type="tool-call",
                                tool_call_id=decoded.tool_call_id,
                                tool_name=decoded.tool_name,
                            )
                        elif decoded.kind == "tool-arg":
                            yield StreamEvent(
                                type="tool-input-delta",
                                tool_call_id=decoded.tool_call_id,
                                tool_name=decoded.tool_name,
                                delta=decoded.text,
                            )
                        elif decoded.kind == "usage":
                            state.usage = state.usage.merged(
                                decoded.prompt_tokens, decoded.completion_tokens
                            )

                calls = decoder.completed_calls()
                logger.info("Step %d finished: %d tool calls", step, len(calls))

                if not calls:
                    if decoder.text:
                        state.turns.append(ConversationTurn.assistant(decoder.text))
                    yield StreamEvent(
                        type="finish-step",
                        step=StepResult(step_index=step, text=decoder.text, usage=state.usage),
                    )
                    settle(state.text, [r.to_dict() for r in state.results], state.usage)
                    yield StreamEvent(type="finish", finish_reason="stop")
                    return

                # Sequential dispatch: a later call may read what an earlier one wrote
                descriptors: list[ToolCallDescriptor] = []
                step_results: list[ToolResultDescriptor] = []
                for call in calls:
                    args = parse_tool_arguments(call.arguments)
                    result, is_error = await dispatcher.dispatch(call.name, args, call.id)
                    if is_error:
                        logger.warning("Tool %s (%s) failed: %s", call.name, call.id, result)
                    descriptors.append(ToolCallDescriptor(
                        tool_call_id=call.id,
                        tool_name=call.name,
                        arguments_json=json.dumps(args, ensure_ascii=False),
                    ))
                    step_results.append(ToolResultDescriptor(
                        tool_call_id=call.id, tool_name=call.name, result=result,
                    ))
                    yield StreamEvent(
                        type="tool-result",
                        tool_call_id=call.id,
                        tool_name=call.name,
                        output=result,
                        is_error=is_error,
                    )

                step_turns = [ConversationTurn.tool_calls(descriptors)]
                step_turns.extend(ConversationTurn.tool_result(r) for r in step_results)
                for turn in step_turns:
                    messages.extend(turn.to_messages())
                state.turns.extend(step_turns)
                state.results.extend(step_results)

                yield StreamEvent(
                    type="finish-step",
                    step=StepResult(
                        step_index=step,
                        text=decoder.text,
                        tool_calls=tuple(descriptors),
                        usage=state.usage,
                    ),
                )

            logger.warning("Tool loop reached max_steps=%d", self.max_steps)
            settle(state.text, [r.to_dict() for r in state.results], state.usage)
            yield StreamEvent(type="finish", finish_reason="length")

        except Exception as e:
            logger.error("Agent run failed: %s", e)
            settle("", [], Usage())
            yield StreamEvent(type="error", error=str(e), auth=is_auth_error(e))

        finally:
            # Abandoned mid-run: resolve with what was produced so far
            settle(state.text, [r.to_dict() for r in state.results], state.usage)
