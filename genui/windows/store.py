"""Session-scoped in-memory store of window documents.

A window has two identities: the short `window_id` the model uses in tool
calls (w + 6 base-36 chars) and an internal `handle` that also covers
provisional documents, i.e. previews of a create_new_window call that
has not been dispatched yet. A confirmed create adopts the provisional
document opened for the same tool call, so the preview turns into the
real window without flicker.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from genui.markup import MutationDetail, MutationResult, MutationTotals, apply_mutations
from genui.markup.mutations import describe_op
from genui.utils import decode_possible_escapes
from genui.windows.preview import PreviewScheduler
from genui.windows.schemas import CreateWindowResult, SetHtmlResult, TitleResult, WindowSummary

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _new_window_id() -> str:
    return "w" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))


def _provisional_handle(tool_call_id: str) -> str:
    return f"provisional-{tool_call_id}"


@dataclass
class WindowDocument:
    """A window's markup plus its latest uncommitted preview."""

    window_id: str
    handle: str
    title: str
    markup: str = ""
    preview_markup: str | None = None
    provisional: bool = False
    created_at: float = field(default_factory=time.time)

    def summary(self, focused: bool = False, include_markup: bool = False) -> WindowSummary:
        return WindowSummary(
            window_id=self.window_id,
            title=self.title,
            markup_length=len(self.markup),
            focused=focused,
            previewing=self.preview_markup is not None,
            markup=self.markup if include_markup else None,
            preview_markup=self.preview_markup if include_markup else None,
        )


class WindowStore:
    """Windows of one session, keyed by window id."""

    def __init__(self, preview: PreviewScheduler | None = None) -> None:
        self._preview = preview or PreviewScheduler()
        self._windows: dict[str, WindowDocument] = {}
        self._provisional: dict[str, WindowDocument] = {}  # handle -> doc
        self._provisional_names: dict[str, str] = {}  # requested name -> handle
        self.focused_window_id: str | None = None

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, window_id: str) -> WindowDocument | None:
        return self._windows.get(window_id)

    def get_by_handle(self, handle: str) -> WindowDocument | None:
        for doc in self._windows.values():
            if doc.handle == handle:
                return doc
        return self._provisional.get(handle)

    def list_windows(self) -> list[WindowDocument]:
        return list(self._windows.values())

    @property
    def window_ids(self) -> list[str]:
        return list(self._windows)

    def _names(self) -> set[str]:
        return {doc.title for doc in self._windows.values()}

    def focus(self, window_id: str | None) -> bool:
        """Set the focused window; None clears focus. False if unknown."""
        if window_id is not None and window_id not in self._windows:
            return False
        self.focused_window_id = window_id
        return True

    # ------------------------------------------------------------------
    # Confirmed writes
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        markup: str,
        tool_call_id: str | None = None,
    ) -> CreateWindowResult:
        """Create a window, suffixing the display name on collision.

        Never fails: "Notes" becomes "Notes (2)", "Notes (3)", ... while
        taken. The new window gets focus. With `tool_call_id` the
        provisional document of that call is adopted; without one, the
        provisional last named `name`.
        """
        base = name.strip()
        final_name = base
        suffix = 2
        names = self._names()
        while final_name in names:
            final_name = f"{base} ({suffix})"
            suffix += 1

        window_id = _new_window_id()
        while window_id in self._windows:
            window_id = _new_window_id()

        markup = decode_possible_escapes(markup)
        doc = self._take_provisional(name, tool_call_id)
        if doc is not None:
            self._preview.cancel(doc.handle)
            doc.window_id = window_id
            doc.title = final_name
            doc.markup = markup
            doc.preview_markup = None
            doc.provisional = False
            logger.debug("Adopted provisional %s as %s", doc.handle, window_id)
        else:
            doc = WindowDocument(
                window_id=window_id,
                handle=f"doc-{uuid4().hex[:12]}",
                title=final_name,
                markup=markup,
            )

        self._windows[window_id] = doc
        self.focused_window_id = window_id
        logger.info("Created window %s %r (%d chars)", window_id, final_name, len(markup))
        return CreateWindowResult(
            status="renamed" if final_name != name else "created",
            name=name,
            final_name=final_name,
            window_id=window_id,
            node_id=doc.handle,
        )

    def rename(self, window_id: str, title: str) -> TitleResult:
        doc = self._windows.get(window_id)
        if doc is not None:
            doc.title = title
        else:
            logger.debug("Title update for unknown window %s", window_id)
        return TitleResult(window_id=window_id, title=title)

    def replace_markup(self, window_id: str, markup: str) -> SetHtmlResult:
        markup = decode_possible_escapes(markup)
        doc = self._windows.get(window_id)
        if doc is not None:
            self._preview.cancel(doc.handle)
            doc.markup = markup
            doc.preview_markup = None
        else:
            logger.debug("Markup replacement for unknown window %s", window_id)
        return SetHtmlResult(window_id=window_id, markup_length=len(markup))

    def mutate(self, window_id: str, mutations: Sequence[Any]) -> MutationResult:
        """Apply mutations to the committed markup of a window.

        An unknown window yields zero targets with every op failed.
        """
        doc = self._windows.get(window_id)
        if doc is None:
            logger.debug("Mutations for unknown window %s", window_id)
            details = [
                MutationDetail(action=action, selector=selector)
                for action, selector in map(describe_op, mutations)
            ]
            return MutationResult(
                window_id=window_id,
                html="",
                totals=MutationTotals(total_mutations=len(mutations), failed=len(mutations)),
                details=details,
            )

        self._preview.cancel(doc.handle)
        result = apply_mutations(doc.markup, mutations)
        doc.markup = result.html
        doc.preview_markup = None
        logger.info(
            "Mutated window %s: %d/%d ops applied",
            window_id,
            result.totals.total_mutations - result.totals.failed,
            result.totals.total_mutations,
        )
        return result.model_copy(update={"window_id": window_id, "name": doc.title})

    def delete(self, window_id: str) -> bool:
        doc = self._windows.pop(window_id, None)
        if doc is None:
            return False
        self._preview.cancel(doc.handle)
        if self.focused_window_id == window_id:
            self.focused_window_id = None
        return True

    # ------------------------------------------------------------------
    # Provisional documents and previews
    # ------------------------------------------------------------------

    def open_provisional(self, tool_call_id: str) -> WindowDocument:
        handle = _provisional_handle(tool_call_id)
        doc = self._provisional.get(handle)
        if doc is None:
            doc = WindowDocument(window_id="", handle=handle, title="", provisional=True)
            self._provisional[handle] = doc
        return doc

    def name_provisional(self, handle: str, name: str) -> None:
        doc = self._provisional.get(handle)
        if doc is None:
            return
        doc.title = name
        self._provisional_names[name] = handle

    def discard_provisional(self, handle: str) -> bool:
        doc = self._provisional.pop(handle, None)
        if doc is None:
            return False
        self._preview.cancel(handle)
        self._forget_name(handle)
        return True

    def _take_provisional(self, name: str, tool_call_id: str | None) -> WindowDocument | None:
        if tool_call_id is not None:
            handle = _provisional_handle(tool_call_id)
        else:
            handle = self._provisional_names.get(name)
        doc = self._provisional.pop(handle, None) if handle else None
        if doc is not None:
            self._forget_name(doc.handle)
        return doc

    def _forget_name(self, handle: str) -> None:
        for name, owner in list(self._provisional_names.items()):
            if owner == handle:
                del self._provisional_names[name]

    @property
    def provisional(self) -> list[WindowDocument]:
        return list(self._provisional.values())

    def schedule_preview(self, handle: str, markup: str) -> None:
        self._preview.schedule(handle, markup, self._write_preview)

    def _write_preview(self, handle: str, markup: str) -> None:
        doc = self.get_by_handle(handle)
        if doc is not None:
            doc.preview_markup = markup

    def close(self) -> None:
        """Cancel every pending preview write."""
        self._preview.cancel_all()
