"""Markup module -- streamed-argument extraction, healing and DOM mutation.

Public API:
    heal_markup            - Close a truncated HTML prefix for preview
    extract_string_field   - Latest complete string field of a partial JSON buffer
    extract_string_prefix  - Unterminated string field (markup previews)
    extract_complete_items - Closed object items of a streaming array field
    parse_tool_arguments   - Tolerant parse of finished tool arguments
    apply_mutations        - Selector-scoped DOM mutation executor
    LiveMutationBuffer     - Re-entrant executor for streamed op lists
"""

from genui.markup.healer import heal_markup, open_elements
from genui.markup.mutations import BLANK_DOCUMENT, LiveMutationBuffer, apply_mutations
from genui.markup.partial_json import (
    extract_complete_items,
    extract_string_field,
    extract_string_prefix,
    parse_tool_arguments,
)
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
)

__all__ = [
    "BLANK_DOCUMENT",
    "LiveMutationBuffer",
    "apply_mutations",
    "extract_complete_items",
    "extract_string_field",
    "extract_string_prefix",
    "heal_markup",
    "open_elements",
    "parse_tool_arguments",
    "AddClass",
    "InsertHtml",
    "MutationDetail",
    "MutationOp",
    "MutationResult",
    "MutationTotals",
    "Remove",
    "RemoveAttr",
    "RemoveClass",
    "ReplaceWithHtml",
    "SetAttr",
    "SetHtml",
    "SetText",
]
