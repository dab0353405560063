"""Shared fixtures: settings, chunk builders and a scripted transport."""

from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from typing import Any

import pytest

from genui.config import Settings
from genui.windows import PreviewScheduler, WindowStore

# ---------------------------------------------------------------------------
# Chunk builders (OpenAI chat.completion.chunk shapes)
# ---------------------------------------------------------------------------


def text_chunk(text: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def tool_chunk(
    index: int = 0,
    *,
    id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> dict[str, Any]:
    function: dict[str, Any] = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    call: dict[str, Any] = {"index": index, "function": function}
    if id is not None:
        call["id"] = id
    return {"choices": [{"index": 0, "delta": {"tool_calls": [call]}}]}


def usage_chunk(prompt_tokens: int, completion_tokens: int) -> dict[str, Any]:
    return {
        "choices": [],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def tool_call_chunks(
    name: str,
    arguments: str,
    *,
    index: int = 0,
    id: str | None = None,
    pieces: int = 3,
) -> list[dict[str, Any]]:
    """A complete tool call: a start chunk, then the arguments in pieces."""
    size = max(1, -(-len(arguments) // pieces))
    chunks = [tool_chunk(index, id=id, name=name, arguments="")]
    for i in range(0, len(arguments), size):
        chunks.append(tool_chunk(index, arguments=arguments[i : i + size]))
    return chunks


# ---------------------------------------------------------------------------
# Fake streams and transport
# ---------------------------------------------------------------------------


class FakeStream:
    """Async iterator over canned chunks, with optional final_completion()."""

    def __init__(self, chunks: list[Any], final: Any = None) -> None:
        self._chunks = list(chunks)
        self._final = final

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk

    def final_completion(self) -> Any:
        return self._final


class ScriptedTransport:
    """Stands in for ChatTransport; each open_stream() plays the next script.

    A script entry is a list of chunks or an exception to raise. Once the
    scripts run out the last entry is replayed.
    """

    def __init__(self, scripts: list[list[dict[str, Any]] | Exception]) -> None:
        self.scripts = scripts
        self.requests: list[dict[str, Any]] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    @asynccontextmanager
    async def open_stream(self, *, messages, tools=None, model=None):
        index = min(len(self.requests), len(self.scripts) - 1)
        self.requests.append({"messages": copy.deepcopy(messages), "tools": tools})
        script = self.scripts[index]
        if isinstance(script, Exception):
            raise script
        yield FakeStream(script)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        OPENAI_API_KEY="test-key",
        provider="openai",
        preview_throttle_ms=0,
        _env_file=None,
    )


@pytest.fixture
def store() -> WindowStore:
    """Window store whose previews are written immediately."""
    return WindowStore(PreviewScheduler(delay_ms=0))
