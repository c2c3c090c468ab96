"""
Chat Session

Holds one user's transcript and enforces a single in-flight lookup at a time.
"""

import logging
import time
import uuid
from collections import OrderedDict
from typing import Awaitable, Callable

from models import ChatMessage, Location

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Hello! Please enter your complaint ID below to get the latest status."
FALLBACK_MESSAGE = "Sorry, I couldn't process your request right now."

Responder = Callable[[str, Location | None], Awaitable[str]]


class ChatSession:
    def __init__(self, respond: Responder, location: Location | None = None, session_id: str | None = None):
        self.id = session_id or uuid.uuid4().hex
        self._respond = respond
        self._location = location
        self.messages: list[ChatMessage] = [ChatMessage(sender="bot", text=WELCOME_MESSAGE)]
        self.busy = False

    @property
    def location(self) -> Location | None:
        return self._location

    async def submit(self, text: str) -> ChatMessage | None:
        """Submit a complaint ID.

        Returns the bot reply, or None when the text is blank or a previous
        submission is still in flight.
        """
        issue_id = text.strip()
        if not issue_id or self.busy:
            return None

        self.messages.append(ChatMessage(sender="user", text=text))
        self.busy = True
        try:
            try:
                reply_text = await self._respond(issue_id, self._location)
            except Exception:
                logger.exception("Status lookup failed", extra={"session_id": self.id, "issue_id": issue_id})
                reply_text = FALLBACK_MESSAGE

            reply = ChatMessage(sender="bot", text=reply_text)
            self.messages.append(reply)
            return reply
        finally:
            self.busy = False


class SessionRegistry:
    """In-memory sessions, bounded by count and evicted after sitting idle.

    Sessions with a lookup in flight are never evicted.
    """

    def __init__(
        self,
        max_sessions: int = 1000,
        idle_ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_sessions = max_sessions
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        # Least recently used first
        self._sessions: OrderedDict[str, ChatSession] = OrderedDict()
        self._last_seen: dict[str, float] = {}

    def create(self, respond: Responder, location: Location | None = None) -> ChatSession:
        self._evict_idle()
        self._evict_overflow(room_for=1)

        session = ChatSession(respond, location)
        self._sessions[session.id] = session
        self._last_seen[session.id] = self._clock()
        return session

    def get(self, session_id: str) -> ChatSession | None:
        self._evict_idle()
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
            self._last_seen[session_id] = self._clock()
        return session

    def remove(self, session_id: str) -> bool:
        if session_id not in self._sessions:
            return False
        self._drop(session_id)
        return True

    def _drop(self, session_id: str):
        del self._sessions[session_id]
        del self._last_seen[session_id]

    def _evict_idle(self):
        now = self._clock()
        expired = [
            session_id for session_id, session in self._sessions.items()
            if not session.busy and now - self._last_seen[session_id] > self.idle_ttl_seconds
        ]
        for session_id in expired:
            self._drop(session_id)
        if expired:
            logger.info("Evicted idle chat sessions", extra={"count": len(expired)})

    def _evict_overflow(self, room_for: int):
        idle = [session_id for session_id, session in self._sessions.items() if not session.busy]
        overflow = len(self._sessions) + room_for - self.max_sessions
        evicted = idle[:max(overflow, 0)]
        for session_id in evicted:
            self._drop(session_id)
        if evicted:
            logger.info("Evicted least recently used chat sessions", extra={"count": len(evicted)})

    def __len__(self):
        return len(self._sessions)
