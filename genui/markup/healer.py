"""Markup healer for live previews of streamed HTML.

Turns an arbitrary prefix of an HTML document into one that parses
cleanly: an unfinished script/style element is dropped, a trailing
partial tag or comment is cut off, and every element still open at the
end is closed innermost-first.

Regex scanning is good enough here; the result only has to be safe to
render until the complete document arrives.
"""

from __future__ import annotations

import re

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})
RAW_TEXT_ELEMENTS = ("script", "style")

_INCOMPLETE_TAG = re.compile(r"<[^>]*$")
_TOKEN = re.compile(
    r"<!--.*?-->"
    r"|<(script|style)\b[^>]*>.*?</\1\s*>"
    r"|<(/?)([a-zA-Z][a-zA-Z0-9:-]*)\b[^>]*>",
    re.IGNORECASE | re.DOTALL,
)


def _drop_open_raw_text(markup: str, tag: str) -> str:
    """Cut an opened-but-unclosed <tag> element off the end of `markup`."""
    opens = list(re.finditer(rf"<{tag}(?=[\s/>]|$)", markup, re.IGNORECASE))
    if not opens:
        return markup
    start = opens[-1].start()
    if re.search(rf"</{tag}\s*>", markup[start:], re.IGNORECASE):
        return markup
    return markup[:start]


def _drop_open_comment(markup: str) -> str:
    start = markup.rfind("<!--")
    if start != -1 and markup.find("-->", start + 4) == -1:
        return markup[:start]
    return markup


def open_elements(markup: str) -> list[str]:
    """Return the names of elements left open in `markup`, outermost first.

    A closing tag closes everything opened after its matching start tag
    (so an unclosed <li> inside a closed <ul> does not count). Closing
    tags with no matching start tag are ignored.
    """
    stack: list[str] = []
    for match in _TOKEN.finditer(markup):
        name = match.group(3)
        if name is None:
            continue  # comment or complete raw-text element
        name = name.lower()
        if name in VOID_ELEMENTS:
            continue
        if match.group(2):
            if name in stack:
                del stack[len(stack) - 1 - stack[::-1].index(name):]
        elif not match.group(0).endswith("/>"):
            stack.append(name)
    return stack


def heal_markup(partial: str) -> str:
    """Return a structurally complete document built from `partial`."""
    healed = partial or ""
    for tag in RAW_TEXT_ELEMENTS:
        healed = _drop_open_raw_text(healed, tag)
    healed = _drop_open_comment(healed)
    healed = _INCOMPLETE_TAG.sub("", healed)

    stack = open_elements(healed)
    if stack:
        healed += "".join(f"</{name}>" for name in reversed(stack))
    return healed
