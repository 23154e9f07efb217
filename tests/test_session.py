import asyncio
import logging

import httpx

from ahichat.session import SessionIdentity, SessionOpenGuard
from ahichat.storage import DAY_MS

from .conftest import FakeClient


class TestSessionOpenGuard:
    async def test_concurrent_callers_share_one_request(self):
        guard = SessionOpenGuard()
        calls = 0

        async def opener():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            return "hello"

        results = await asyncio.gather(*(guard.ensure_sent(opener) for _ in range(5)))

        assert calls == 1
        assert results.count("hello") == 1
        assert results.count(None) == 4
        assert guard.sent

    async def test_later_calls_are_noops(self):
        guard = SessionOpenGuard()
        calls = []

        async def opener():
            calls.append(1)
            return "hi"

        assert await guard.ensure_sent(opener) == "hi"
        assert await guard.ensure_sent(opener) is None
        assert len(calls) == 1

    async def test_reset_allows_a_new_request(self):
        guard = SessionOpenGuard()

        async def opener():
            return "hi"

        await guard.ensure_sent(opener)
        guard.reset()

        assert guard.sent is False
        assert await guard.ensure_sent(opener) == "hi"

    async def test_failure_is_logged_and_not_retried(self, caplog):
        guard = SessionOpenGuard()
        calls = []

        async def opener():
            calls.append(1)
            raise httpx.ConnectError("down")

        with caplog.at_level(logging.WARNING, logger="ahichat.session"):
            assert await guard.ensure_sent(opener) is None
        assert await guard.ensure_sent(opener) is None

        assert len(calls) == 1
        assert "Session-open request failed" in caplog.text

    async def test_cancelled_caller_does_not_lose_the_greeting(self):
        guard = SessionOpenGuard()
        release = asyncio.Event()
        calls = 0

        async def opener():
            nonlocal calls
            calls += 1
            await release.wait()
            return "hello"

        first = asyncio.create_task(guard.ensure_sent(opener))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.gather(first, return_exceptions=True)

        assert first.cancelled()
        assert guard.sent is False

        release.set()
        assert await guard.ensure_sent(opener) == "hello"
        assert guard.sent
        assert calls == 1


class TestSessionIdentity:
    def test_session_created_once(self, clock):
        identity = SessionIdentity(clock=clock)

        first = identity.start_session()

        assert identity.start_session() is first
        assert identity.session is first
        assert first.id.startswith(f"{first.started_at}-")

    def test_persisted_session_is_rejoined(self, store, clock):
        original = SessionIdentity(store, clock=clock).start_session()

        rejoined = SessionIdentity(store, clock=clock).start_session()

        assert rejoined == original

    def test_session_from_an_earlier_day_is_not_rejoined(self, store):
        now = [1_700_000_000_000]
        clock = lambda: now[0]  # noqa: E731
        original = SessionIdentity(store, clock=clock).start_session()

        now[0] += 3 * DAY_MS
        restarted = SessionIdentity(store, clock=clock).start_session()

        assert restarted.id != original.id
        assert restarted.started_at == now[0]
        assert store.load_session() == restarted

    def test_new_session_replaces_and_resets_guard(self, store, clock):
        identity = SessionIdentity(store, clock=clock)
        old = identity.start_session()
        identity.open_guard.sent = True

        new = identity.new_session()

        assert new.id != old.id
        assert identity.open_guard.sent is False
        assert store.load_session() == new

    async def test_ensure_session_open_sent_uses_current_session(self, clock):
        identity = SessionIdentity(clock=clock)
        client = FakeClient(greeting="Welcome")

        assert await identity.ensure_session_open_sent(client) == "Welcome"
        assert await identity.ensure_session_open_sent(client) is None
        assert client.session_open_calls == 1
