"""Windows module -- session window store, live previews and event gate.

Public API:
    WindowStore        - In-memory windows of one session
    WindowDocument     - A window's committed and preview markup
    PreviewScheduler   - Throttled per-document preview writes
    LivePreview        - Previews driven by streamed tool-call events
    parse_window_event - Gate for window-event callbacks
    build_window_prompt - Agent prompt for an accepted window event
"""

from genui.windows.events import WindowEvent, build_window_prompt, parse_window_event
from genui.windows.preview import LivePreview, PreviewScheduler
from genui.windows.schemas import CreateWindowResult, SetHtmlResult, TitleResult, WindowSummary
from genui.windows.store import WindowDocument, WindowStore

__all__ = [
    "CreateWindowResult",
    "LivePreview",
    "PreviewScheduler",
    "SetHtmlResult",
    "TitleResult",
    "WindowDocument",
    "WindowEvent",
    "WindowStore",
    "WindowSummary",
    "build_window_prompt",
    "parse_window_event",
]
