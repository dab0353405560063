"""Per-conversation state: history, windows, previews, tools and run lock.

Sessions are kept in memory only, in an LRU of at most
settings.max_sessions entries.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field

from genui.api.prompts import AgentContext
from genui.api.tools import ToolDispatcher, build_dispatcher
from genui.config import Settings
from genui.conversation import ConversationHistory
from genui.windows import LivePreview, PreviewScheduler, WindowStore

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Everything one conversation owns."""

    session_id: str
    history: ConversationHistory
    store: WindowStore
    preview: LivePreview
    dispatcher: ToolDispatcher
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @classmethod
    def create(cls, session_id: str, settings: Settings) -> Session:
        store = WindowStore(PreviewScheduler(settings.preview_throttle_ms))
        return cls(
            session_id=session_id,
            history=ConversationHistory(),
            store=store,
            preview=LivePreview(store),
            dispatcher=build_dispatcher(store),
        )

    @property
    def busy(self) -> bool:
        return self.lock.locked()

    def context(self) -> AgentContext:
        return AgentContext(
            available_window_ids=self.store.window_ids,
            focused_window_id=self.store.focused_window_id,
        )

    def close(self) -> None:
        self.preview.reset()
        self.store.close()


class SessionManager:
    """LRU map of live sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
        return session

    def get_or_create(self, session_id: str | None = None) -> Session:
        """Get existing or create new session with LRU eviction."""
        if session_id and session_id in self._sessions:
            # Move to end (most recently used)
            self._sessions.move_to_end(session_id)
            return self._sessions[session_id]

        # Evict the least recently used idle sessions; a running one is never closed
        while len(self._sessions) >= self._settings.max_sessions:
            evicted_id = next((sid for sid, s in self._sessions.items() if not s.busy), None)
            if evicted_id is None:
                logger.warning(
                    "All %d sessions are busy, exceeding max_sessions", len(self._sessions)
                )
                break
            self._sessions.pop(evicted_id).close()
            logger.info("Evicted session %s", evicted_id)

        session = Session.create(session_id or uuid.uuid4().hex, self._settings)
        self._sessions[session.session_id] = session
        return session

    def end(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
