"""Session identity and the one-time session-open greeting."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from .models import Session, new_id, now_ms
from .parser import parse_session_open
from .storage import ConversationStore, start_of_today

logger = logging.getLogger(__name__)


class SessionOpenGuard:
    """Tracks whether the session-open greeting has been delivered.

    The first caller starts the request; callers arriving while it is in
    flight await the same task. The greeting goes to the first caller that
    receives the result, so a cancelled caller does not lose it. Once it
    has been handed out, later calls do nothing until `reset()`.
    """

    def __init__(self):
        self.sent = False
        self._inflight: asyncio.Task | None = None

    async def ensure_sent(self, opener: Callable[[], Awaitable[str | None]]) -> str | None:
        """Run `opener` at most once and return its greeting to exactly one caller."""
        if self.sent:
            return None
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._run(opener))
        task = self._inflight

        greeting = await asyncio.shield(task)
        # a reset() while in flight belongs to a newer session
        if self.sent or self._inflight is not task:
            return None
        self.sent = True
        return greeting

    @staticmethod
    async def _run(opener: Callable[[], Awaitable[str | None]]) -> str | None:
        try:
            return await opener()
        except (httpx.HTTPError, ValueError):
            logger.warning("Session-open request failed", exc_info=True)
            return None

    def reset(self):
        self.sent = False
        self._inflight = None


class SessionIdentity:
    """Owns the current session id and start time.

    A session is created on first need. When a store is given the session
    is persisted, so a restart on the same day rejoins it; a stored session
    from an earlier day is replaced by a new one.
    """

    def __init__(
        self,
        store: ConversationStore | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._store = store
        self._clock = clock
        self._session: Session | None = None
        self.open_guard = SessionOpenGuard()

    @property
    def session(self) -> Session:
        return self.start_session()

    def start_session(self) -> Session:
        if self._session is not None:
            return self._session

        stored = self._store.load_session() if self._store else None
        if stored is not None and stored.started_at >= start_of_today(self._clock()):
            logger.debug("Rejoining session %s", stored.id)
            self._session = stored
            return stored

        return self.new_session()

    def new_session(self) -> Session:
        """Start a fresh session, replacing any current one."""
        now = self._clock()
        self._session = Session(id=new_id(now), started_at=now)
        self.open_guard.reset()
        if self._store:
            self._store.save_session(self._session)
        logger.info("Started session %s", self._session.id)
        return self._session

    async def ensure_session_open_sent(self, client) -> str | None:
        """Issue the session-open request once; return the greeting to one caller."""
        session = self.start_session()

        async def opener() -> str | None:
            return parse_session_open(await client.session_open(session))

        return await self.open_guard.ensure_sent(opener)
