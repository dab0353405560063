"""Conversation history -- the only context the model gets back each step.

Turns are immutable; history is append-only. to_messages() serializes it
into the chat-completions message list, trimming whole exchanges (a user
turn and everything after it) from the front so tool results are never
separated from the assistant turn that requested them.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal, Union

Role = Literal["system", "user", "assistant", "tool"]


@dataclass(frozen=True)
class ToolCallDescriptor:
    tool_call_id: str
    tool_name: str
    arguments_json: str

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.tool_call_id,
            "type": "function",
            "function": {"name": self.tool_name, "arguments": self.arguments_json},
        }


@dataclass(frozen=True)
class ToolResultDescriptor:
    tool_call_id: str
    tool_name: str
    result: Any

    def content(self) -> str:
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, ensure_ascii=False)

    def to_dict(self) -> dict[str, Any]:
        return {"toolCallId": self.tool_call_id, "toolName": self.tool_name, "result": self.result}


TurnContent = Union[str, tuple[ToolCallDescriptor, ...], tuple[ToolResultDescriptor, ...]]


@dataclass(frozen=True)
class ConversationTurn:
    """One history entry: plain text, tool-call descriptors or tool results."""

    role: Role
    content: TurnContent

    @classmethod
    def user(cls, text: str) -> ConversationTurn:
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, text: str) -> ConversationTurn:
        return cls(role="assistant", content=text)

    @classmethod
    def tool_calls(cls, calls: Iterable[ToolCallDescriptor]) -> ConversationTurn:
        return cls(role="assistant", content=tuple(calls))

    @classmethod
    def tool_result(cls, result: ToolResultDescriptor) -> ConversationTurn:
        return cls(role="tool", content=(result,))

    def to_messages(self) -> list[dict[str, Any]]:
        if isinstance(self.content, str):
            return [{"role": self.role, "content": self.content}]
        if self.role == "assistant":
            return [{
                "role": "assistant",
                "content": None,
                "tool_calls": [call.to_message() for call in self.content],
            }]
        return [
            {"role": "tool", "tool_call_id": result.tool_call_id, "content": result.content()}
            for result in self.content
        ]


class ConversationHistory:
    """Append-only list of turns for one session."""

    def __init__(self, turns: Iterable[ConversationTurn] | None = None) -> None:
        self._turns: list[ConversationTurn] = list(turns or [])

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    def extend(self, turns: Iterable[ConversationTurn]) -> None:
        self._turns.extend(turns)

    def clear(self) -> None:
        self._turns.clear()

    def _exchanges(self) -> list[list[dict[str, Any]]]:
        """Messages grouped into exchanges, each starting at a user turn."""
        groups: list[list[dict[str, Any]]] = []
        for turn in self._turns:
            if turn.role == "user" or not groups:
                groups.append([])
            groups[-1].extend(turn.to_messages())
        return groups

    def to_messages(
        self,
        system_prompt: str,
        new_user_prompt: str | None = None,
        max_messages: int | None = None,
    ) -> list[dict[str, Any]]:
        """Serialize as [system, *history, user?].

        With max_messages, the oldest exchanges are dropped until the
        history fits; the most recent exchange is always kept.
        """
        groups = self._exchanges()
        if max_messages is not None:
            total = sum(len(g) for g in groups)
            while len(groups) > 1 and total > max_messages:
                total -= len(groups.pop(0))

        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for group in groups:
            messages.extend(group)
        if new_user_prompt is not None:
            messages.append({"role": "user", "content": new_user_prompt})
        return messages
