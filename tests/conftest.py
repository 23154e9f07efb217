"""Shared fixtures: a scripted fake backend, a recording sleep and a temp store."""

from __future__ import annotations

import asyncio
import itertools
import random

import pytest

from ahichat.delivery import DeliveryScheduler
from ahichat.models import Sender
from ahichat.session import SessionIdentity
from ahichat.storage import ConversationStore


class FakeClient:
    """Stands in for BackendClient.

    `replies` are consumed in order by `chat()`. Each item is a response body,
    an exception to raise, or a zero-argument coroutine function to await.
    """

    def __init__(self, replies=None, greeting: str = ""):
        self.replies = list(replies or [])
        self.greeting = greeting
        self.chat_calls = []
        self.session_open_calls = 0
        self.closed = False

    async def chat(self, message, session):
        self.chat_calls.append((message, session))
        reply = self.replies.pop(0) if self.replies else {"messages": []}
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return await reply()
        return reply

    async def session_open(self, session):
        self.session_open_calls += 1
        await asyncio.sleep(0)
        return {"message": self.greeting}

    async def aclose(self):
        self.closed = True


class RecordingSleep:
    """Records requested delays and yields once instead of waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        await asyncio.sleep(0)


class EventLog:
    def __init__(self):
        self.events: list[tuple] = []

    def on_message(self, message):
        self.events.append(("message", message.sender.value, message.text))

    def on_typing(self, typing: bool):
        self.events.append(("typing", typing))


def assistant_texts(messages):
    return [m.text for m in messages if m.sender is Sender.ASSISTANT]


async def wait_until(predicate, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def clock():
    counter = itertools.count(1_700_000_000_000, 10)
    return lambda: next(counter)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def store(tmp_path):
    s = ConversationStore(tmp_path / "history.db")
    yield s
    s.close()


@pytest.fixture
def make_scheduler(clock, recording_sleep, event_log):
    def factory(client, seed: int = 7, identity: SessionIdentity | None = None):
        return DeliveryScheduler(
            client,
            identity or SessionIdentity(clock=clock),
            rng=random.Random(seed),
            sleep=recording_sleep,
            clock=clock,
            on_message=event_log.on_message,
            on_typing=event_log.on_typing,
        )

    return factory
