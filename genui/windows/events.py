"""Window-event callback gate.

Windows report user interactions with a postMessage payload:

    {"source": "genui-llm-window", "kind": "window-event",
     "event": "action" | "submit", "action": "...", "details": {...}}

Only explicit action/submit events re-invoke the agent; anything else
(focus, clicks, foreign messages) is ignored.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

WINDOW_EVENT_SOURCE = "genui-llm-window"


class WindowEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    source: str | None = None
    kind: Literal["window-event"]
    event: Literal["action", "submit"]
    action: str | None = None
    details: Any = None


def parse_window_event(payload: Any) -> WindowEvent | None:
    """Return the event if `payload` passes the gate, else None.

    A missing source is accepted; a different one is not.
    """
    if not isinstance(payload, dict):
        return None
    try:
        event = WindowEvent.model_validate(payload)
    except ValidationError:
        logger.debug("Ignoring window message: %.200r", payload)
        return None
    if event.source is not None and event.source != WINDOW_EVENT_SOURCE:
        return None
    return event


def build_window_prompt(sender_name: str, event: WindowEvent) -> tuple[str, str]:
    """Return (prompt, history_text) for an accepted event from `sender_name`."""
    description = json.dumps(event.model_dump(exclude_none=True), indent=2, ensure_ascii=False)
    prompt = (
        f'Window "{sender_name}" sent a message:\n\n{description}\n\n'
        "Please handle this by using tools as needed."
    )
    return prompt, f"Window {sender_name} message: {description}"
