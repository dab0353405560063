"""Field extraction from tool-call argument buffers that are still streaming.

The argument text of a tool call grows one fragment at a time and only
becomes valid JSON once the call completes. These helpers scan the raw
buffer so the live preview can react before that point.

- extract_string_field: latest *complete* string value of a field
- extract_string_prefix: value so far, possibly unterminated (markup only)
- extract_complete_items: fully closed object items of an array field
- parse_tool_arguments: tolerant parse of a finished argument buffer
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from genui.utils import unescape_json_string

logger = logging.getLogger(__name__)

_TRAILING_COMMAS = re.compile(r",+$")


def _field_pattern(field: str, opener: str) -> re.Pattern[str]:
    return re.compile(rf'"{re.escape(field)}"\s*:\s*{re.escape(opener)}')


def _scan_string(buffer: str, start: int) -> tuple[str, bool]:
    """Scan a string literal body starting at `start`.

    Returns (raw_body, closed). The body keeps its escape sequences; when
    unterminated, a trailing incomplete escape (`\\` or `\\u12`) is cut off.
    """
    escaped = False
    last_escape = -1
    for i in range(start, len(buffer)):
        ch = buffer[i]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
            last_escape = i
        elif ch == '"':
            return buffer[start:i], True
    end = len(buffer)
    if escaped:
        end = last_escape
    elif last_escape >= 0 and buffer[last_escape + 1] == "u" and end - last_escape < 6:
        end = last_escape
    return buffer[start:end], False


def _last_value_start(buffer: str, field: str) -> int | None:
    last = None
    for match in _field_pattern(field, '"').finditer(buffer):
        last = match.end()
    return last


def extract_string_field(buffer: str, field: str) -> str | None:
    """Return the latest complete string value of `field`, or None.

    Looks at the last `"field": "` occurrence only. While its closing quote
    has not arrived yet the field is incomplete and None is returned, so a
    truncated value never reaches the caller.
    """
    start = _last_value_start(buffer, field)
    if start is None:
        return None
    raw, closed = _scan_string(buffer, start)
    if not closed:
        return None
    return unescape_json_string(raw)


def extract_string_prefix(buffer: str, field: str) -> str | None:
    """Return the value of `field` received so far, even if unterminated.

    Only meant for markup that goes through the healer afterwards. A
    trailing partial escape sequence is dropped before decoding.
    """
    start = _last_value_start(buffer, field)
    if start is None:
        return None
    raw, _ = _scan_string(buffer, start)
    return unescape_json_string(raw)


def extract_complete_items(buffer: str, field: str) -> list[dict[str, Any]]:
    """Return the object items of the array `field` that are fully closed.

    Scans `"field": [` forward, tracking string and nesting state, and
    decodes each top-level `{...}` item as soon as its closing brace
    arrives. Items that fail to decode are skipped.
    """
    match = _field_pattern(field, "[").search(buffer)
    if match is None:
        return []

    items: list[dict[str, Any]] = []
    depth = 0
    item_start = -1
    in_string = False
    escaped = False

    for i in range(match.end(), len(buffer)):
        ch = buffer[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            if depth == 0 and ch == "{":
                item_start = i
            depth += 1
        elif ch in "}]":
            if depth == 0:
                break  # end of the array itself
            depth -= 1
            if depth == 0 and item_start >= 0:
                try:
                    item = json.loads(buffer[item_start : i + 1])
                except json.JSONDecodeError:
                    logger.debug("Skipping undecodable %s item at %d", field, item_start)
                else:
                    if isinstance(item, dict):
                        items.append(item)
                item_start = -1
    return items


def parse_tool_arguments(text: str) -> dict[str, Any]:
    """Parse a completed argument buffer; anything unusable becomes {}."""
    cleaned = _TRAILING_COMMAS.sub("", (text or "").strip())
    if not cleaned:
        return {}
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("Malformed tool arguments (%d chars), using {}", len(cleaned))
        return {}
    return parsed if isinstance(parsed, dict) else {}
