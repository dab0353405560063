"""Selector-scoped DOM mutation executor.

Applies an ordered list of mutation ops to an HTML document parsed with
BeautifulSoup; selectors are resolved by soupsieve (soup.select). Each op
runs against the result of the ops before it. A failing op is recorded
in its detail entry and never stops the ops after it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from bs4 import BeautifulSoup, Tag
from bs4.dammit import EntitySubstitution
from bs4.element import PageElement
from bs4.formatter import HTMLFormatter

from genui.markup.schemas import (
    AddClass,
    InsertHtml,
    MutationDetail,
    MutationOp,
    MutationResult,
    MutationTotals,
    Remove,
    RemoveAttr,
    RemoveClass,
    ReplaceWithHtml,
    SetAttr,
    SetHtml,
    SetText,
    mutation_op_adapter,
)

logger = logging.getLogger(__name__)

BLANK_DOCUMENT = '<!DOCTYPE html><html><head><meta charset="utf-8"></head><body></body></html>'
PARSER = "html.parser"

# Escapes only &, < and >; void elements without a trailing slash
FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
    empty_attributes_are_booleans=True,
)


def parse_document(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup or BLANK_DOCUMENT, PARSER)


def serialize_document(soup: BeautifulSoup) -> str:
    return soup.decode(formatter=FORMATTER)


def _parse_fragment(html: str) -> list[PageElement]:
    """Parse `html` into detached top-level nodes, in document order."""
    fragment = BeautifulSoup(html, PARSER)
    return [node.extract() for node in list(fragment.contents)]


def _class_tokens(el: Tag) -> list[str]:
    value = el.get("class")
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def _check_token(token: str) -> str:
    if not token or any(ch.isspace() for ch in token):
        raise ValueError(f"Invalid class token: {token!r}")
    return token


def _coerce_op(raw: MutationOp | dict[str, Any]) -> MutationOp:
    if isinstance(raw, dict):
        return mutation_op_adapter.validate_python(raw)
    return raw


def describe_op(raw: Any) -> tuple[str, str]:
    """Best-effort (action, selector) of an op that may not have validated."""
    if isinstance(raw, dict):
        return str(raw.get("action", "")), str(raw.get("selector", ""))
    return getattr(raw, "action", ""), getattr(raw, "selector", "")


def _apply_one(op: MutationOp, el: Tag) -> None:
    if isinstance(op, SetText):
        el.string = op.text
    elif isinstance(op, SetHtml):
        el.clear()
        for node in _parse_fragment(op.html):
            el.append(node)
    elif isinstance(op, ReplaceWithHtml):
        if el.parent is None:
            return  # already detached by an earlier match
        for node in _parse_fragment(op.html):
            el.insert_before(node)
        el.extract()
    elif isinstance(op, InsertHtml):
        nodes = _parse_fragment(op.html)
        if op.position == "beforebegin":
            for node in nodes:
                el.insert_before(node)
        elif op.position == "afterend":
            anchor: PageElement = el
            for node in nodes:
                anchor.insert_after(node)
                anchor = node
        elif op.position == "afterbegin":
            for i, node in enumerate(nodes):
                el.insert(i, node)
        else:
            for node in nodes:
                el.append(node)
    elif isinstance(op, SetAttr):
        el[op.name.lower()] = op.value
    elif isinstance(op, RemoveAttr):
        el.attrs.pop(op.name.lower(), None)
    elif isinstance(op, AddClass):
        tokens = _class_tokens(el)
        token = _check_token(op.class_name)
        if token not in tokens:
            tokens.append(token)
        el["class"] = tokens
    elif isinstance(op, RemoveClass):
        token = _check_token(op.class_name)
        el["class"] = [t for t in _class_tokens(el) if t != token]
    elif isinstance(op, Remove):
        el.extract()


def apply_mutations(
    markup: str,
    mutations: Sequence[MutationOp | dict[str, Any]],
) -> MutationResult:
    """Apply `mutations` in order and report per-op match/apply counts.

    Unmatched selectors yield matched=0/applied=0 and are not errors. An
    op that raises (invalid selector, invalid op shape, bad class token)
    is recorded with its error and matched=0/applied=0. If no element was
    touched the input markup is returned unchanged.
    """
    soup = parse_document(markup)
    details: list[MutationDetail] = []
    total_targets = 0
    total_applied = 0
    touched = False

    for raw in mutations:
        action, selector = describe_op(raw)
        try:
            op = _coerce_op(raw)
            targets = soup.select(op.selector)
            applied = 0
            for el in targets:
                _apply_one(op, el)
                applied += 1
                touched = True
        except Exception as e:  # invalid op shape, selector syntax, bad class token
            logger.debug("Mutation %s %r failed: %s", action, selector, e)
            details.append(MutationDetail(action=action, selector=selector, error=str(e)))
            continue
        total_targets += len(targets)
        total_applied += applied
        details.append(MutationDetail(
            action=op.action, selector=op.selector, matched=len(targets), applied=applied,
        ))

    html = serialize_document(soup) if touched else markup
    return MutationResult(
        html=html,
        totals=MutationTotals(
            total_mutations=len(mutations),
            total_targets=total_targets,
            total_applied=total_applied,
            failed=sum(1 for d in details if d.applied == 0),
        ),
        details=details,
    )


class LiveMutationBuffer:
    """Uncommitted document that a streamed op list is applied to.

    apply_new() is called with the full list of ops completed so far and
    applies only those past the applied-count cursor, so every op of the
    growing list runs exactly once.
    """

    def __init__(self, markup: str) -> None:
        self.markup = markup
        self.applied_count = 0

    def apply_new(self, mutations: Sequence[MutationOp | dict[str, Any]]) -> MutationResult | None:
        pending = list(mutations[self.applied_count:])
        if not pending:
            return None
        result = apply_mutations(self.markup, pending)
        self.markup = result.html
        self.applied_count += len(pending)
        return result
