"""Stream decoder -- OpenAI-style chat-completion chunks to normalized events.

One StreamDecoder lives for a single streamed step. Chunks are validated
at the boundary with pydantic; anything that does not fit is logged and
skipped rather than raised, so one bad chunk never kills a step.

Tool calls are tracked by their position index in `delta.tool_calls`.
Providers send the id and name on the first fragment only (some never
send an id), then argument text in pieces.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

PROMPT_TOKEN_KEYS = ("prompt_tokens", "input_tokens", "total_prompt_tokens")
COMPLETION_TOKEN_KEYS = ("completion_tokens", "output_tokens", "total_completion_tokens")


# ---------------------------------------------------------------------------
# Chunk models
# ---------------------------------------------------------------------------


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FunctionDelta(_Lenient):
    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(_Lenient):
    index: int | None = None
    id: str | None = None
    function: FunctionDelta | None = None


class ChunkDelta(_Lenient):
    content: str | None = None
    tool_calls: list[ToolCallDelta] | None = None


class ChunkChoice(_Lenient):
    index: int = 0
    delta: ChunkDelta | None = None
    finish_reason: str | None = None


class ChatChunk(_Lenient):
    choices: list[ChunkChoice] = Field(default_factory=list)
    usage: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Decoded values
# ---------------------------------------------------------------------------


@dataclass
class DecodedEvent:
    """A normalized event produced from one or more chunks."""

    kind: str  # text, tool-start, tool-arg, usage, step-end
    text: str = ""
    tool_call_id: str = ""
    tool_name: str = ""
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


@dataclass
class ToolCallState:
    """Accumulated state of one streamed tool call."""

    id: str
    name: str = ""
    arguments: str = ""
    started: bool = False


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def merged(self, prompt_tokens: int | None, completion_tokens: int | None) -> Usage:
        """Overwrite the counts that were reported, keep the others."""
        return Usage(
            prompt_tokens=self.prompt_tokens if prompt_tokens is None else prompt_tokens,
            completion_tokens=(
                self.completion_tokens if completion_tokens is None else completion_tokens
            ),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "inputTokens": self.prompt_tokens,
            "outputTokens": self.completion_tokens,
        }


def _first_count(usage: dict[str, Any], keys: tuple[str, ...]) -> int | None:
    for key in keys:
        value = usage.get(key)
        if value is None:
            continue
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None
    return None


def extract_usage(usage: Any) -> tuple[int | None, int | None]:
    """Return (prompt_tokens, completion_tokens) from a provider usage object.

    Accepts dicts or objects with attributes; missing or non-integer
    counts come back as None.
    """
    if usage is None:
        return None, None
    if not isinstance(usage, dict):
        if isinstance(usage, BaseModel):
            usage = usage.model_dump()
        else:
            usage = {k: getattr(usage, k, None) for k in PROMPT_TOKEN_KEYS + COMPLETION_TOKEN_KEYS}
    return _first_count(usage, PROMPT_TOKEN_KEYS), _first_count(usage, COMPLETION_TOKEN_KEYS)


def _completion_usage(completion: Any) -> Any:
    if completion is None:
        return None
    if isinstance(completion, dict):
        return completion.get("usage")
    return getattr(completion, "usage", None)


# ---------------------------------------------------------------------------
# StreamDecoder
# ---------------------------------------------------------------------------


class StreamDecoder:
    """Decodes the chunks of one streamed step.

    Usage:
        decoder = StreamDecoder(step=0)
        async for event in decoder.decode(stream):
            ...
        calls = decoder.completed_calls()
    """

    def __init__(self, step: int) -> None:
        self.step = step
        self.text = ""
        self._calls: dict[int, ToolCallState] = {}
        self._chunk_usage: Any = None

    def feed(self, chunk: Any) -> list[DecodedEvent]:
        """Decode a single chunk into zero or more events."""
        if not isinstance(chunk, dict):
            logger.debug("Ignoring non-object chunk: %r", type(chunk).__name__)
            return []
        try:
            parsed = ChatChunk.model_validate(chunk)
        except ValidationError as e:
            logger.debug("Ignoring malformed chunk (%d errors)", e.error_count())
            return []

        if parsed.usage:
            self._chunk_usage = parsed.usage

        if not parsed.choices or parsed.choices[0].delta is None:
            return []
        delta = parsed.choices[0].delta

        events: list[DecodedEvent] = []
        if delta.content:
            self.text += delta.content
            events.append(DecodedEvent(kind="text", text=delta.content))

        for tc in delta.tool_calls or []:
            index = tc.index or 0
            state = self._calls.get(index)
            if state is None:
                state = ToolCallState(id=tc.id or f"tc_{self.step}_{index}")
                self._calls[index] = state

            if tc.function and tc.function.name:
                state.name = tc.function.name
            if not state.started and state.name:
                state.started = True
                events.append(DecodedEvent(
                    kind="tool-start", tool_call_id=state.id, tool_name=state.name,
                ))

            fragment = tc.function.arguments if tc.function else None
            if fragment:
                state.arguments += fragment
                events.append(DecodedEvent(
                    kind="tool-arg", text=fragment,
                    tool_call_id=state.id, tool_name=state.name,
                ))
        return events

    async def decode(self, stream: AsyncIterable[Any]) -> AsyncIterator[DecodedEvent]:
        """Decode `stream` to exhaustion, then emit usage (if any) and step-end.

        If the stream exposes final_completion() its usage wins over the
        usage reported on chunks.
        """
        async for chunk in stream:
            for event in self.feed(chunk):
                yield event

        usage = _completion_usage(await self._final_completion(stream))
        if usage is None:
            usage = self._chunk_usage
        if usage is not None:
            prompt_tokens, completion_tokens = extract_usage(usage)
            logger.debug(
                "Step %d usage: prompt=%s completion=%s",
                self.step, prompt_tokens, completion_tokens,
            )
            yield DecodedEvent(
                kind="usage", prompt_tokens=prompt_tokens, completion_tokens=completion_tokens,
            )
        yield DecodedEvent(kind="step-end")

    async def _final_completion(self, stream: Any) -> Any:
        final = getattr(stream, "final_completion", None)
        if not callable(final):
            return None
        try:
            result = final()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            logger.warning("final_completion() failed, using chunk usage: %s", e)
            return None

    def completed_calls(self) -> list[ToolCallState]:
        """Calls whose name is known, in first-seen order."""
        return [state for state in self._calls.values() if state.name]
