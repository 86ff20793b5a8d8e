"""In-memory conversation history, bounded by an LRU byte ceiling.

Each session maps to an ordered list of ``{"role", "content"}`` dicts
holding only the user/assistant text of past turns.  Tool traffic never
lands here: it lives and dies inside a single turn.

• **OrderedDict** for O(1) LRU eviction and promotion.
• **Size tracking** via ``json.dumps`` byte length of each history.
• **threading.Lock** because FastAPI serves concurrent sessions from one
  process.
• Purely ephemeral: histories are lost on restart.

The store is created by the server lifespan and handed to the routes
through ``app.state``.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 20 * 1024 * 1024

Message = dict[str, str]


class ConversationStore:
    """Least-recently-used session histories bounded by total byte size."""

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        self._max_bytes = max_bytes
        self._current_bytes = 0
        # session_id → (messages, estimated_size_bytes)
        self._sessions: OrderedDict[str, tuple[list[Message], int]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _estimate_bytes(messages: list[Message]) -> int:
        return len(json.dumps(messages, ensure_ascii=False).encode("utf-8"))

    def get_history(self, session_id: str) -> list[Message]:
        """Return a copy of the session's messages (promoting it to MRU)."""
        with self._lock:
            if session_id not in self._sessions:
                return []
            self._sessions.move_to_end(session_id)
            messages, _ = self._sessions[session_id]
            return list(messages)

    def append(self, session_id: str, *messages: Message) -> None:
        """Append messages to a session, evicting the oldest sessions if needed."""
        with self._lock:
            existing, old_size = self._sessions.pop(session_id, ([], 0))
            self._current_bytes -= old_size

            updated = existing + [dict(m) for m in messages]
            size = self._estimate_bytes(updated)

            # A single oversize history keeps only its most recent messages
            while size > self._max_bytes and len(updated) > 1:
                updated = updated[1:]
                size = self._estimate_bytes(updated)
            if size > self._max_bytes:
                logger.debug("Store: dropping session %s (size %d > max %d)",
                             session_id, size, self._max_bytes)
                return

            while self._current_bytes + size > self._max_bytes and self._sessions:
                evicted_id, (_, evicted_size) = self._sessions.popitem(last=False)
                self._current_bytes -= evicted_size
                logger.debug("Store: evicted session %s (%d bytes)", evicted_id, evicted_size)

            self._sessions[session_id] = (updated, size)
            self._current_bytes += size

    def clear(self, session_id: str) -> bool:
        """Forget a session.  Returns ``True`` if it existed."""
        with self._lock:
            if session_id not in self._sessions:
                return False
            _, size = self._sessions.pop(session_id)
            self._current_bytes -= size
            return True

    @property
    def current_bytes(self) -> int:
        return self._current_bytes

    @property
    def session_count(self) -> int:
        return len(self._sessions)
