"""Live previews of tool calls that are still streaming.

PreviewScheduler throttles preview writes per document: the first write
starts a timer, later writes only replace the pending markup, and the
latest markup lands when the timer fires. Confirmed writes cancel the
pending write for their document first.

LivePreview consumes the runner's caller-facing events (the same ones
the host forwards) and turns partial tool arguments into previews:
create_new_window gets a provisional document, dom_replace applies each
completed op once, set_window_html shows the healed markup so far.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from genui.markup import (
    LiveMutationBuffer,
    extract_complete_items,
    extract_string_field,
    extract_string_prefix,
    heal_markup,
)
from genui.utils import decode_possible_escapes

if TYPE_CHECKING:
    from genui.api.runner import StreamEvent
    from genui.windows.store import WindowStore

logger = logging.getLogger(__name__)

PreviewWriter = Callable[[str, str], None]


class PreviewScheduler:
    """Per-key throttled writes driven by loop.call_later."""

    def __init__(self, delay_ms: int = 50) -> None:
        self._delay = delay_ms / 1000
        self._pending: dict[str, tuple[asyncio.TimerHandle, str, PreviewWriter]] = {}

    def schedule(self, key: str, markup: str, write: PreviewWriter) -> None:
        pending = self._pending.get(key)
        if pending is not None:
            handle, _, _ = pending
            self._pending[key] = (handle, markup, write)
            return
        if self._delay <= 0:
            write(key, markup)
            return
        loop = asyncio.get_running_loop()
        handle = loop.call_later(self._delay, self._fire, key)
        self._pending[key] = (handle, markup, write)

    def _fire(self, key: str) -> None:
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        _, markup, write = pending
        try:
            write(key, markup)
        except Exception:
            logger.exception("Preview write failed for %s", key)

    def cancel(self, key: str) -> bool:
        """Drop the pending write for `key`; True if one was pending."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        pending[0].cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)

    def is_pending(self, key: str) -> bool:
        return key in self._pending


@dataclass
class _CallPreview:
    tool_name: str
    buffer: str = ""
    handle: str | None = None  # provisional document of a create_new_window call
    name: str | None = None
    window_id: str | None = None
    live: LiveMutationBuffer | None = None


class LivePreview:
    """Drives previews in a WindowStore from streamed tool-call events."""

    def __init__(self, store: WindowStore) -> None:
        self._store = store
        self._calls: dict[str, _CallPreview] = {}

    @property
    def active_calls(self) -> list[str]:
        return list(self._calls)

    def handle(self, event: StreamEvent) -> None:
        if event.type == "tool-call":
            self._start(event.tool_call_id, event.tool_name)
        elif event.type == "tool-input-delta":
            self._delta(event.tool_call_id, event.tool_name, event.delta)
        elif event.type == "tool-result":
            self._finish_call(event.tool_call_id, event.output)
        elif event.type in ("finish-step", "finish", "error"):
            self.reset()

    def reset(self) -> None:
        """Drop all per-call state, discarding provisional documents nobody adopted."""
        for call in self._calls.values():
            if call.handle is not None:
                self._store.discard_provisional(call.handle)
        self._calls.clear()

    # ------------------------------------------------------------------

    def _start(self, tool_call_id: str, tool_name: str) -> _CallPreview:
        call = self._calls.get(tool_call_id)
        if call is None:
            call = _CallPreview(tool_name=tool_name)
            if tool_name == "create_new_window":
                call.handle = self._store.open_provisional(tool_call_id).handle
            self._calls[tool_call_id] = call
        return call

    def _delta(self, tool_call_id: str, tool_name: str, fragment: str) -> None:
        call = self._calls.get(tool_call_id)
        if call is None:
            if not tool_name:
                return
            call = self._start(tool_call_id, tool_name)
        call.buffer += fragment

        if call.tool_name == "create_new_window":
            self._preview_create(call)
        elif call.tool_name == "dom_replace":
            self._preview_mutations(call)
        elif call.tool_name == "set_window_html":
            self._preview_replace(call)

    def _preview_create(self, call: _CallPreview) -> None:
        if call.handle is None:
            return
        name = extract_string_field(call.buffer, "name")
        if name and name != call.name:
            call.name = name
            self._store.name_provisional(call.handle, name)
        html = extract_string_prefix(call.buffer, "html")
        if html is not None:
            self._store.schedule_preview(call.handle, heal_markup(decode_possible_escapes(html)))

    def _preview_mutations(self, call: _CallPreview) -> None:
        if call.window_id is None:
            call.window_id = extract_string_field(call.buffer, "windowId")
            if call.window_id is None:
                return
        doc = self._store.get(call.window_id)
        if doc is None:
            return
        if call.live is None:
            call.live = LiveMutationBuffer(doc.markup)
        result = call.live.apply_new(extract_complete_items(call.buffer, "mutations"))
        if result is not None:
            self._store.schedule_preview(doc.handle, call.live.markup)

    def _preview_replace(self, call: _CallPreview) -> None:
        if call.window_id is None:
            call.window_id = extract_string_field(call.buffer, "windowId")
            if call.window_id is None:
                return
        doc = self._store.get(call.window_id)
        html = extract_string_prefix(call.buffer, "html")
        if doc is not None and html is not None:
            self._store.schedule_preview(doc.handle, heal_markup(decode_possible_escapes(html)))

    def _finish_call(self, tool_call_id: str, output: Any) -> None:
        call = self._calls.pop(tool_call_id, None)
        if call is None or call.handle is None:
            return
        adopted = isinstance(output, dict) and output.get("nodeId") == call.handle
        if not adopted:
            self._store.discard_provisional(call.handle)
