"""Tests for the session window store."""

import re

import pytest

from genui.windows import PreviewScheduler, WindowStore

TIMER_HTML = '<!DOCTYPE html><html><body><div id="t">0</div></body></html>'


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreate:
    def test_creates_and_focuses(self, store):
        result = store.create("Timer", TIMER_HTML)

        assert result.status == "created"
        assert result.final_name == "Timer"
        assert re.fullmatch(r"w[0-9a-z]{6}", result.window_id)
        doc = store.get(result.window_id)
        assert doc.markup == TIMER_HTML
        assert doc.title == "Timer"
        assert store.focused_window_id == result.window_id

    def test_name_collisions_get_suffixes(self, store):
        first = store.create("Notes", "")
        second = store.create("Notes", "")
        third = store.create("Notes", "")

        assert first.final_name == "Notes"
        assert second.status == "renamed"
        assert second.final_name == "Notes (2)"
        assert third.final_name == "Notes (3)"
        assert len({first.window_id, second.window_id, third.window_id}) == 3
        assert store.focused_window_id == third.window_id

    def test_payload_keys(self, store):
        payload = store.create("Notes", "").to_payload()
        assert set(payload) == {"status", "name", "finalName", "windowId", "nodeId"}

    def test_double_escaped_markup_is_decoded(self, store):
        result = store.create("A", '<div class=\\"x\\">\\n</div>')
        assert store.get(result.window_id).markup == '<div class="x">\n</div>'


# ---------------------------------------------------------------------------
# rename / replace / mutate / delete
# ---------------------------------------------------------------------------


class TestUpdates:
    def test_rename(self, store):
        window_id = store.create("A", "").window_id
        result = store.rename(window_id, "B")
        assert result.to_payload() == {"status": "updated", "windowId": window_id, "title": "B"}
        assert store.get(window_id).title == "B"

    def test_rename_unknown_window_is_soft(self, store):
        assert store.rename("wnope00", "B").status == "updated"
        assert store.list_windows() == []

    def test_replace_markup(self, store):
        window_id = store.create("A", "<p>old</p>").window_id
        result = store.replace_markup(window_id, "<p>new</p>")
        assert result.markup_length == len("<p>new</p>")
        assert store.get(window_id).markup == "<p>new</p>"

    def test_mutate(self, store):
        window_id = store.create("Timer", TIMER_HTML).window_id
        result = store.mutate(window_id, [{"action": "set_text", "selector": "#t", "text": "1"}])

        assert result.window_id == window_id
        assert result.name == "Timer"
        assert result.totals.total_applied == 1
        assert '<div id="t">1</div>' in store.get(window_id).markup

    def test_mutate_unknown_window(self, store):
        result = store.mutate("wnope00", [
            {"action": "set_text", "selector": "#t", "text": "1"},
            {"action": "remove", "selector": ".x"},
        ])
        assert result.html == ""
        assert result.totals.total_mutations == 2
        assert result.totals.failed == 2
        assert result.totals.total_targets == 0
        assert [(d.action, d.selector) for d in result.details] == [("set_text", "#t"), ("remove", ".x")]

    def test_delete_clears_focus(self, store):
        window_id = store.create("A", "").window_id
        assert store.delete(window_id) is True
        assert store.delete(window_id) is False
        assert store.focused_window_id is None

    def test_focus(self, store):
        a = store.create("A", "").window_id
        store.create("B", "")
        assert store.focus(a) is True
        assert store.focused_window_id == a
        assert store.focus("wnope00") is False
        assert store.focused_window_id == a
        assert store.focus(None) is True
        assert store.focused_window_id is None


# ---------------------------------------------------------------------------
# Provisional documents and previews
# ---------------------------------------------------------------------------


class TestProvisional:
    def test_create_adopts_provisional_by_name(self, store):
        doc = store.open_provisional("call_1")
        store.name_provisional(doc.handle, "Timer")
        store.schedule_preview(doc.handle, "<p>partial</p>")
        assert doc.preview_markup == "<p>partial</p>"

        result = store.create("Timer", TIMER_HTML)

        assert result.node_id == "provisional-call_1"
        assert store.provisional == []
        adopted = store.get(result.window_id)
        assert adopted is doc
        assert adopted.provisional is False
        assert adopted.markup == TIMER_HTML
        assert adopted.preview_markup is None

    def test_create_without_provisional_gets_new_handle(self, store):
        doc = store.open_provisional("call_1")
        store.name_provisional(doc.handle, "Other")
        result = store.create("Timer", "")
        assert result.node_id != doc.handle
        assert len(store.provisional) == 1

    def test_same_name_creates_adopt_their_own_call(self, store):
        first = store.open_provisional("a")
        second = store.open_provisional("b")
        store.name_provisional(first.handle, "Notes")
        store.name_provisional(second.handle, "Notes")

        one = store.create("Notes", "<p>1</p>", tool_call_id="a")
        two = store.create("Notes", "<p>2</p>", tool_call_id="b")

        assert (one.node_id, one.final_name) == ("provisional-a", "Notes")
        assert (two.node_id, two.final_name) == ("provisional-b", "Notes (2)")
        assert store.get(one.window_id) is first
        assert store.get(two.window_id) is second
        assert store.provisional == []

    def test_unknown_tool_call_id_gets_new_handle(self, store):
        doc = store.open_provisional("a")
        store.name_provisional(doc.handle, "Notes")
        result = store.create("Notes", "", tool_call_id="zzz")
        assert result.node_id.startswith("doc-")
        assert store.provisional == [doc]

    def test_discard_provisional(self, store):
        doc = store.open_provisional("call_1")
        store.name_provisional(doc.handle, "Timer")
        assert store.discard_provisional(doc.handle) is True
        assert store.discard_provisional(doc.handle) is False
        assert store.create("Timer", "").node_id != doc.handle

    def test_open_provisional_is_idempotent(self, store):
        assert store.open_provisional("c") is store.open_provisional("c")

    def test_provisional_windows_are_not_listed(self, store):
        store.open_provisional("c")
        assert store.window_ids == []
        assert store.get_by_handle("provisional-c") is not None

    @pytest.mark.asyncio
    async def test_confirmed_write_cancels_pending_preview(self):
        scheduler = PreviewScheduler(delay_ms=10_000)
        store = WindowStore(scheduler)
        window_id = store.create("A", "<p>0</p>").window_id
        handle = store.get(window_id).handle

        store.schedule_preview(handle, "<p>preview</p>")
        assert scheduler.is_pending(handle)

        store.mutate(window_id, [{"action": "set_text", "selector": "p", "text": "1"}])
        assert not scheduler.is_pending(handle)
        assert store.get(window_id).preview_markup is None

        store.schedule_preview(handle, "<p>preview</p>")
        store.replace_markup(window_id, "<p>2</p>")
        assert not scheduler.is_pending(handle)

        store.schedule_preview(handle, "<p>preview</p>")
        store.close()
        assert not scheduler.is_pending(handle)

    def test_summary(self, store):
        window_id = store.create("A", "<p>x</p>").window_id
        summary = store.get(window_id).summary(focused=True)
        assert summary.to_payload() == {
            "windowId": window_id,
            "title": "A",
            "markupLength": 8,
            "focused": True,
            "previewing": False,
        }
