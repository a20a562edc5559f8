from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from attendbot.engine.states import DialogState

log = logging.getLogger(__name__)


@dataclass
class Session:
    state: DialogState = DialogState.START
    course_page: int = 0
    selected_course_id: str | None = None
    selected_course_name: str | None = None
    pending_plan_key: str | None = None
    phone_number: str | None = None


class SessionRegistry:
    """In-memory dialogue sessions, one per user. Lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[int, Session] = {}

    def get(self, user_id: int) -> Session:
        session = self._sessions.get(user_id)
        if session is None:
            session = self._sessions[user_id] = Session()
            log.debug("session_created user_id=%s", user_id)
        return session

    def peek(self, user_id: int) -> Session | None:
        return self._sessions.get(user_id)

    def clear(self, user_id: int) -> None:
        if self._sessions.pop(user_id, None) is not None:
            log.debug("session_cleared user_id=%s", user_id)

    def __len__(self) -> int:
        return len(self._sessions)


class UserLocks:
    """One asyncio.Lock per user id.

    Locks are dropped once nobody holds or waits on them, so the map only
    grows with concurrently active users.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[user_id] -= 1
            if not self._users[user_id]:
                del self._users[user_id]
                self._locks.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._locks)
