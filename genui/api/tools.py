"""Tool dispatcher and the window tools for OpenAI-style function calling.

Provides:
- ToolDispatcher: registers tools, exposes their definitions, dispatches calls
- 4 window tool closures bound to one session's WindowStore:
  - create_new_window: New window from a full HTML document
  - dom_replace: Selector-scoped mutations of an existing window
  - update_window_title: Change a window's display title
  - set_window_html: Replace a window's whole document

Handlers return JSON-serializable dicts. Missing or mistyped arguments are
coerced the way the model most likely meant them instead of failing.
"""

from __future__ import annotations

import contextvars
import inspect
import logging
from collections.abc import Callable
from typing import Any

from genui.windows.store import WindowStore

logger = logging.getLogger(__name__)

# Id of the tool call being dispatched, for handlers that key state on it
current_tool_call_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "current_tool_call_id", default=None
)


# ---------------------------------------------------------------------------
# ToolDispatcher
# ---------------------------------------------------------------------------


class ToolDispatcher:
    """Registers tool handlers and dispatches tool calls from the model.

    Each handler is a callable (sync or async) that accepts **kwargs and
    returns a JSON-serializable result. Unknown tools and handler
    exceptions become error results; dispatch never raises.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[..., Any]] = {}
        self._schemas: dict[str, dict[str, Any]] = {}

    def register(self, name: str, handler: Callable[..., Any], schema: dict[str, Any]) -> None:
        """Register a tool handler with its JSON schema."""
        self._handlers[name] = handler
        self._schemas[name] = schema

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(
        self,
        name: str,
        args: dict[str, Any],
        tool_call_id: str | None = None,
    ) -> tuple[Any, bool]:
        """Dispatch a tool call and return (result, is_error)."""
        handler = self._handlers.get(name)
        if not handler:
            logger.warning("Model called unknown tool %s", name)
            return {"error": f"Unknown tool: {name}"}, True
        token = current_tool_call_id.set(tool_call_id)
        try:
            result = handler(**args)
            if inspect.isawaitable(result):
                result = await result
            return result, False
        except Exception as e:
            logger.exception("Tool dispatch error for %s", name)
            return {"error": f"Tool error: {e}"}, True
        finally:
            current_tool_call_id.reset(token)

    def tool_definitions(self) -> list[dict[str, Any]]:
        """Return all tool definitions in chat-completions `tools` format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": schema.get("description", ""),
                    "parameters": {k: v for k, v in schema.items() if k != "description"},
                },
            }
            for name, schema in self._schemas.items()
        ]


# ---------------------------------------------------------------------------
# Window tool closures
# ---------------------------------------------------------------------------


def _text(value: Any) -> str:
    """Coerce a loosely-typed argument to a string ('' for missing)."""
    if value is None or value is False:
        return ""
    return value if isinstance(value, str) else str(value)


def create_window_tools(store: WindowStore) -> dict[str, Callable[..., Any]]:
    """Create tool closures with the session's WindowStore captured.

    Returns a dict of async callables suitable for ToolDispatcher
    registration.
    """

    async def create_new_window(name: Any = "", html: Any = "", **_: Any) -> dict[str, Any]:
        """Create a window; colliding names get a " (n)" suffix."""
        return store.create(
            _text(name), _text(html), tool_call_id=current_tool_call_id.get()
        ).to_payload()

    async def dom_replace(windowId: Any = "", mutations: Any = None, **_: Any) -> dict[str, Any]:  # noqa: N803
        """Apply mutations to a window by id."""
        ops = mutations if isinstance(mutations, list) else []
        return store.mutate(_text(windowId), ops).to_payload()

    async def update_window_title(windowId: Any = "", title: Any = "", **_: Any) -> dict[str, Any]:  # noqa: N803
        return store.rename(_text(windowId), _text(title)).to_payload()

    async def set_window_html(windowId: Any = "", html: Any = "", **_: Any) -> dict[str, Any]:  # noqa: N803
        return store.replace_markup(_text(windowId), _text(html)).to_payload()

    return {
        "create_new_window": create_new_window,
        "dom_replace": dom_replace,
        "update_window_title": update_window_title,
        "set_window_html": set_window_html,
    }


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------


def _variant(action: str, **fields: dict[str, Any]) -> dict[str, Any]:
    properties: dict[str, Any] = {"action": {"const": action}, "selector": {"type": "string"}}
    properties.update(fields)
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


_STRING: dict[str, Any] = {"type": "string"}

_MUTATION_SCHEMA: dict[str, Any] = {
    "oneOf": [
        _variant("set_text", text=_STRING),
        _variant("set_html", html=_STRING),
        _variant("replace_with_html", html=_STRING),
        _variant(
            "insert_html",
            position={"enum": ["beforebegin", "afterbegin", "beforeend", "afterend"]},
            html=_STRING,
        ),
        _variant("set_attr", name=_STRING, value=_STRING),
        _variant("remove_attr", name=_STRING),
        _variant("add_class", **{"class": _STRING}),
        _variant("remove_class", **{"class": _STRING}),
        _variant("remove"),
    ],
}

_CREATE_NEW_WINDOW_SCHEMA: dict[str, Any] = {
    "description": "Create a new window with HTML content",
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Display name of the window"},
        "html": {"type": "string", "description": "Complete self-contained HTML document"},
    },
    "required": ["name", "html"],
    "additionalProperties": False,
}

_DOM_REPLACE_SCHEMA: dict[str, Any] = {
    "description": "Apply selector-based DOM mutations to an existing window (by windowId)",
    "type": "object",
    "properties": {
        "windowId": {"type": "string"},
        "mutations": {"type": "array", "items": _MUTATION_SCHEMA, "minItems": 1},
    },
    "required": ["windowId", "mutations"],
    "additionalProperties": False,
}

_UPDATE_WINDOW_TITLE_SCHEMA: dict[str, Any] = {
    "description": "Update the visible title for a window by windowId",
    "type": "object",
    "properties": {"windowId": {"type": "string"}, "title": {"type": "string"}},
    "required": ["windowId", "title"],
    "additionalProperties": False,
}

_SET_WINDOW_HTML_SCHEMA: dict[str, Any] = {
    "description": "Replace the full HTML content of a window by windowId",
    "type": "object",
    "properties": {"windowId": {"type": "string"}, "html": {"type": "string"}},
    "required": ["windowId", "html"],
    "additionalProperties": False,
}


def register_window_tools(dispatcher: ToolDispatcher, store: WindowStore) -> None:
    """Create the window tools for `store` and register them with the dispatcher."""
    closures = create_window_tools(store)

    dispatcher.register("create_new_window", closures["create_new_window"], _CREATE_NEW_WINDOW_SCHEMA)
    dispatcher.register("dom_replace", closures["dom_replace"], _DOM_REPLACE_SCHEMA)
    dispatcher.register("update_window_title", closures["update_window_title"], _UPDATE_WINDOW_TITLE_SCHEMA)
    dispatcher.register("set_window_html", closures["set_window_html"], _SET_WINDOW_HTML_SCHEMA)


def build_dispatcher(store: WindowStore) -> ToolDispatcher:
    dispatcher = ToolDispatcher()
    register_window_tools(dispatcher, store)
    return dispatcher
