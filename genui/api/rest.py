"""REST API for the window agent.

Endpoints:
  POST   /chat/stream                                  - Run the agent, SSE events
  DELETE /chat/{session_id}                            - End a session
  GET    /sessions/{session_id}/windows                - List windows
  GET    /sessions/{session_id}/windows/{window_id}    - Window detail with markup
  DELETE /sessions/{session_id}/windows/{window_id}    - Close a window
  POST   /sessions/{session_id}/windows/{window_id}/focus  - Focus a window
  POST   /sessions/{session_id}/windows/{window_id}/events - Window-event callback
  GET    /health                                       - Health check

Streaming responses carry the run's caller events as `data:` lines and
end with a `summary` event holding the final text, tool results and
usage. One run per session at a time; a second request gets 409.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from genui.api.runner import AgentRunner
from genui.session import Session, SessionManager
from genui.windows import build_window_prompt, parse_window_event

logger = logging.getLogger(__name__)


def _sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


class _RunResponse(StreamingResponse):
    """SSE response that runs `on_close` however the response ends.

    The body generator may never start (the client can disconnect before
    the first chunk is pulled), so per-run cleanup cannot live in its
    `finally` block.
    """

    def __init__(self, content: Any, on_close: Callable[[], Awaitable[None]], **kwargs: Any) -> None:
        super().__init__(content, **kwargs)
        self._on_close = on_close

    async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self._on_close()


def create_app(
    runner: AgentRunner,
    sessions: SessionManager,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def _stream_run(
        session: Session,
        prompt: str,
        history_text: str | None = None,
    ) -> Response:
        if session.busy:
            return JSONResponse(
                {"error": "A run is already in progress for this session"},
                status_code=409,
            )
        await session.lock.acquire()
        stream = runner.run(
            prompt,
            session.history,
            session.dispatcher,
            session.context(),
            history_text=history_text,
        )

        async def event_generator():
            try:
                async for event in stream:
                    session.preview.handle(event)
                    yield _sse(event.to_dict())
                usage = await stream.usage
                yield _sse({
                    "type": "summary",
                    "sessionId": session.session_id,
                    "text": await stream.text,
                    "toolResults": await stream.tool_results,
                    "usage": usage.to_dict(),
                })
            except Exception as e:
                logger.error("Stream error: %s", e)
                yield _sse({"type": "error", "error": str(e), "auth": False})

        body = event_generator()

        async def finish() -> None:
            try:
                await body.aclose()
                await stream.aclose()
            finally:
                session.preview.reset()
                session.lock.release()

        return _RunResponse(
            body,
            on_close=finish,
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
                "X-Session-Id": session.session_id,
            },
        )

    def _session_or_404(request: Request) -> Session | JSONResponse:
        session_id = request.path_params["session_id"]
        session = sessions.get(session_id)
        if session is None:
            return JSONResponse({"error": f"Unknown session: {session_id}"}, status_code=404)
        return session

    async def chat_stream(request: Request) -> Response:
        """POST /chat/stream - SSE streaming agent run."""
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)

        session = sessions.get_or_create(body.get("session_id"))
        return await _stream_run(session, message)

    async def end_chat(request: Request) -> JSONResponse:
        """DELETE /chat/{session_id} - End a session and drop its windows."""
        session_id = request.path_params["session_id"]
        session = sessions.get(session_id)
        if session is None:
            return JSONResponse({"error": f"Unknown session: {session_id}"}, status_code=404)
        if session.busy:
            return JSONResponse(
                {"error": "A run is already in progress for this session"},
                status_code=409,
            )
        sessions.end(session_id)
        return JSONResponse({"status": "ended", "session_id": session_id})

    async def list_windows(request: Request) -> JSONResponse:
        """GET /sessions/{session_id}/windows - Windows of a session."""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        store = session.store
        return JSONResponse({
            "sessionId": session.session_id,
            "focusedWindowId": store.focused_window_id,
            "windows": [
                doc.summary(focused=doc.window_id == store.focused_window_id).to_payload()
                for doc in store.list_windows()
            ],
        })

    async def get_window(request: Request) -> JSONResponse:
        """GET /sessions/{session_id}/windows/{window_id} - Window with markup."""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        window_id = request.path_params["window_id"]
        doc = session.store.get(window_id)
        if doc is None:
            return JSONResponse({"error": f"Unknown window: {window_id}"}, status_code=404)
        summary = doc.summary(
            focused=window_id == session.store.focused_window_id,
            include_markup=True,
        )
        return JSONResponse(summary.to_payload())

    async def delete_window(request: Request) -> JSONResponse:
        """DELETE /sessions/{session_id}/windows/{window_id} - Close a window."""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        window_id = request.path_params["window_id"]
        if not session.store.delete(window_id):
            return JSONResponse({"error": f"Unknown window: {window_id}"}, status_code=404)
        return JSONResponse({"status": "deleted", "windowId": window_id})

    async def focus_window(request: Request) -> JSONResponse:
        """POST /sessions/{session_id}/windows/{window_id}/focus - Focus a window."""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        window_id = request.path_params["window_id"]
        if not session.store.focus(window_id):
            return JSONResponse({"error": f"Unknown window: {window_id}"}, status_code=404)
        return JSONResponse({"status": "focused", "windowId": window_id})

    async def window_event(request: Request) -> Response:
        """POST /sessions/{session_id}/windows/{window_id}/events - Window callback.

        Only action/submit window events re-invoke the agent; anything
        else is acknowledged with 202 and ignored.
        """
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        window_id = request.path_params["window_id"]
        doc = session.store.get(window_id)
        if doc is None:
            return JSONResponse({"error": f"Unknown window: {window_id}"}, status_code=404)

        try:
            payload = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        event = parse_window_event(payload)
        if event is None:
            return JSONResponse({"status": "ignored"}, status_code=202)

        logger.info("Window %s sent %s event", window_id, event.event)
        prompt, history_text = build_window_prompt(doc.title, event)
        return await _stream_run(session, prompt, history_text=history_text)

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        return JSONResponse({"status": "healthy", "sessions": len(sessions)})

    routes = [
        Route("/chat/stream", chat_stream, methods=["POST"]),
        Route("/chat/{session_id}", end_chat, methods=["DELETE"]),
        Route("/sessions/{session_id}/windows", list_windows),
        Route("/sessions/{session_id}/windows/{window_id}", get_window, methods=["GET"]),
        Route("/sessions/{session_id}/windows/{window_id}", delete_window, methods=["DELETE"]),
        Route("/sessions/{session_id}/windows/{window_id}/focus", focus_window, methods=["POST"]),
        Route("/sessions/{session_id}/windows/{window_id}/events", window_event, methods=["POST"]),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
