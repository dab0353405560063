"""Tests for the selector-scoped DOM mutation executor."""

from genui.markup.mutations import (
    BLANK_DOCUMENT,
    LiveMutationBuffer,
    apply_mutations,
)
from genui.markup.schemas import AddClass, SetText


def _ops(result):
    return [(d.action, d.matched, d.applied, d.error is not None) for d in result.details]


# ---------------------------------------------------------------------------
# Single ops
# ---------------------------------------------------------------------------


class TestOps:
    def test_set_text(self):
        result = apply_mutations('<div id="a">old</div>', [
            {"action": "set_text", "selector": "#a", "text": "new"},
        ])
        assert result.html == '<div id="a">new</div>'

    def test_set_text_escapes_markup_keeps_unicode(self):
        result = apply_mutations('<p id="a"></p>', [
            {"action": "set_text", "selector": "#a", "text": "café & <b>"},
        ])
        assert result.html == '<p id="a">café &amp; &lt;b&gt;</p>'

    def test_set_html(self):
        result = apply_mutations('<div id="a">old</div>', [
            {"action": "set_html", "selector": "#a", "html": "<b>x</b><br>y"},
        ])
        assert result.html == '<div id="a"><b>x</b><br>y</div>'

    def test_replace_with_html(self):
        result = apply_mutations('<main><div id="a">x</div></main>', [
            {"action": "replace_with_html", "selector": "#a", "html": "<section>y</section><hr>"},
        ])
        assert result.html == "<main><section>y</section><hr></main>"

    def test_insert_positions(self):
        markup = '<div><ul id="l"><li>b</li></ul></div>'
        result = apply_mutations(markup, [
            {"action": "insert_html", "selector": "#l", "position": "afterbegin", "html": "<li>a</li>"},
            {"action": "insert_html", "selector": "#l", "position": "beforeend", "html": "<li>c</li>"},
            {"action": "insert_html", "selector": "#l", "position": "beforebegin", "html": "<h2>T</h2>"},
            {"action": "insert_html", "selector": "#l", "position": "afterend", "html": "<p>1</p><p>2</p>"},
        ])
        assert result.html == (
            '<div><h2>T</h2><ul id="l"><li>a</li><li>b</li><li>c</li></ul><p>1</p><p>2</p></div>'
        )

    def test_set_and_remove_attr(self):
        result = apply_mutations('<a id="x" href="/old">go</a>', [
            {"action": "set_attr", "selector": "#x", "name": "Data-State", "value": "on"},
            {"action": "remove_attr", "selector": "#x", "name": "href"},
        ])
        assert result.html == '<a id="x" data-state="on">go</a>'

    def test_class_ops(self):
        result = apply_mutations('<div class="a b" id="x"></div>', [
            {"action": "add_class", "selector": "#x", "class": "c"},
            {"action": "add_class", "selector": "#x", "class": "a"},
            {"action": "remove_class", "selector": "#x", "class": "b"},
        ])
        assert result.html == '<div class="a c" id="x"></div>'

    def test_remove(self):
        result = apply_mutations('<ul><li class="x">1</li><li>2</li><li class="x">3</li></ul>', [
            {"action": "remove", "selector": "li.x"},
        ])
        assert result.html == "<ul><li>2</li></ul>"
        assert result.details[0].matched == 2
        assert result.details[0].applied == 2

    def test_accepts_model_instances(self):
        result = apply_mutations('<p id="a">0</p><p id="b">0</p>', [
            SetText(selector="#a", text="1"),
            AddClass(selector="#b", class_name="hot"),
        ])
        assert result.html == '<p id="a">1</p><p id="b" class="hot">0</p>'


# ---------------------------------------------------------------------------
# Ordering and reporting
# ---------------------------------------------------------------------------


class TestOrderingAndReporting:
    def test_ops_apply_in_order(self):
        """The later op wins; each op sees the result of the ones before it."""
        result = apply_mutations('<div id="a"></div>', [
            {"action": "set_text", "selector": "#a", "text": "A"},
            {"action": "set_text", "selector": "#a", "text": "B"},
        ])
        assert result.html == '<div id="a">B</div>'

    def test_reversed_order_last_wins(self):
        result = apply_mutations('<div id="a"></div>', [
            {"action": "set_text", "selector": "#a", "text": "B"},
            {"action": "set_text", "selector": "#a", "text": "A"},
        ])
        assert result.html == '<div id="a">A</div>'

    def test_later_op_targets_inserted_node(self):
        result = apply_mutations('<div id="a"></div>', [
            {"action": "set_html", "selector": "#a", "html": '<span id="s">0</span>'},
            {"action": "set_text", "selector": "#s", "text": "1"},
        ])
        assert result.html == '<div id="a"><span id="s">1</span></div>'
        assert _ops(result) == [("set_html", 1, 1, False), ("set_text", 1, 1, False)]

    def test_unmatched_selector_is_not_an_error(self):
        result = apply_mutations('<div id="a">0</div>', [
            {"action": "set_text", "selector": "#missing", "text": "x"},
            {"action": "set_text", "selector": "#a", "text": "1"},
        ])
        assert result.html == '<div id="a">1</div>'
        assert _ops(result) == [("set_text", 0, 0, False), ("set_text", 1, 1, False)]
        assert result.totals.total_mutations == 2
        assert result.totals.total_targets == 1
        assert result.totals.total_applied == 1
        assert result.totals.failed == 1

    def test_invalid_ops_recorded_and_skipped(self):
        result = apply_mutations('<div id="a">0</div>', [
            {"action": "set_text", "selector": "div[", "text": "x"},
            {"action": "set_text", "selector": "#a"},
            {"action": "explode", "selector": "#a"},
            {"action": "add_class", "selector": "#a", "class": "two words"},
            {"action": "set_text", "selector": "#a", "text": "ok"},
        ])
        assert result.html == '<div id="a">ok</div>'
        assert _ops(result) == [
            ("set_text", 0, 0, True),
            ("set_text", 0, 0, True),
            ("explode", 0, 0, True),
            ("add_class", 0, 0, True),
            ("set_text", 1, 1, False),
        ]
        assert result.totals.failed == 4

    def test_empty_list_returns_markup_unchanged(self):
        markup = "<div  id='a'>x</div>"
        result = apply_mutations(markup, [])
        assert result.html == markup
        assert result.totals.total_mutations == 0
        assert result.details == []

    def test_untouched_markup_is_byte_identical(self):
        markup = "<!DOCTYPE html>\n<div  id='a' >x</div>"
        result = apply_mutations(markup, [{"action": "remove", "selector": ".nothing"}])
        assert result.html == markup

    def test_empty_markup_uses_blank_document(self):
        result = apply_mutations("", [{"action": "set_html", "selector": "body", "html": "<p>hi</p>"}])
        assert "<body><p>hi</p></body>" in result.html
        assert '<meta charset="utf-8">' in result.html
        assert BLANK_DOCUMENT.startswith("<!DOCTYPE html>")

    def test_payload_uses_camel_case(self):
        result = apply_mutations('<p id="a"></p>', [{"action": "remove", "selector": "#a"}])
        payload = result.to_payload()
        assert payload["status"] == "edited"
        assert payload["totals"] == {
            "totalMutations": 1, "totalTargets": 1, "totalApplied": 1, "failed": 0,
        }
        assert payload["details"] == [{"action": "remove", "selector": "#a", "matched": 1, "applied": 1}]
        assert "windowId" not in payload


# ---------------------------------------------------------------------------
# LiveMutationBuffer
# ---------------------------------------------------------------------------


class TestLiveMutationBuffer:
    def test_applies_each_op_once(self):
        buffer = LiveMutationBuffer('<ul id="l"></ul>')
        first = {"action": "insert_html", "selector": "#l", "position": "beforeend", "html": "<li>1</li>"}
        second = {"action": "insert_html", "selector": "#l", "position": "beforeend", "html": "<li>2</li>"}

        assert buffer.apply_new([first]) is not None
        assert buffer.apply_new([first]) is None
        buffer.apply_new([first, second])

        assert buffer.markup == '<ul id="l"><li>1</li><li>2</li></ul>'
        assert buffer.applied_count == 2

    def test_failed_op_still_advances_cursor(self):
        buffer = LiveMutationBuffer('<p id="a"></p>')
        buffer.apply_new([{"action": "set_text", "selector": "#a"}])
        buffer.apply_new([
            {"action": "set_text", "selector": "#a"},
            {"action": "set_text", "selector": "#a", "text": "x"},
        ])
        assert buffer.markup == '<p id="a">x</p>'
        assert buffer.applied_count == 2
