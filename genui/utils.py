"""Shared utility functions for genui."""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Generator
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\", "/": "/"}
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)


def unescape_json_string(raw: str) -> str:
    """Decode the JSON escape sequences of a raw string-literal body.

    `raw` is the text between the quotes with escapes still in place.
    Falls back to replacing the common escapes one by one when the
    body is not valid JSON (e.g. a stray backslash).
    """
    try:
        return json.loads(f'"{raw}"', strict=False)
    except json.JSONDecodeError:
        return _ESCAPE_RE.sub(lambda m: _SIMPLE_ESCAPES.get(m.group(1), m.group(0)), raw)


def decode_possible_escapes(value: str) -> str:
    """Normalize markup that arrived JSON-escaped twice.

    Models occasionally emit `\\n` and `\\"` literally inside an already
    decoded string argument. Unescaped quotes are preserved as-is.
    """
    if "\\" not in value:
        return value
    return unescape_json_string(value.replace('\\"', '"').replace('"', '\\"'))


class Deferred(Generic[T]):
    """Single-assignment value that can be awaited.

    resolve() only takes effect the first time; later calls are ignored
    and return False. Safe to create outside a running event loop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._value: Any = None

    def resolve(self, value: T) -> bool:
        if self._event.is_set():
            return False
        self._value = value
        self._event.set()
        return True

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def result(self) -> T:
        """Return the value; raises if not resolved yet."""
        if not self._event.is_set():
            raise RuntimeError("Deferred value not resolved yet")
        return self._value

    async def wait(self) -> T:
        await self._event.wait()
        return self._value

    def __await__(self) -> Generator[Any, None, T]:
        return self.wait().__await__()
