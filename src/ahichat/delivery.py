"""Paced delivery of backend replies with a simulated typing indicator.

Every `submit` bumps the delivery generation. Each pipeline captures its
generation and re-checks it after every suspension point (network call,
typing delay, inter-message pause) before touching the message list, so a
newer submit silently invalidates whatever an older one had left to do.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

from .config import FALLBACK_TEXT
from .models import ChatReply, Message, ReplyChunk, Sender, new_id, now_ms
from .pacing import inter_message_pause_ms, typing_delay_ms
from .parser import ReplyFormatError, parse_chat_reply
from .session import SessionIdentity

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _chunk_text(chunk: ReplyChunk) -> str:
    if not chunk.text.strip():
        raise ReplyFormatError("reply chunk has no text")
    return chunk.text


class DeliveryScheduler:
    """Owns the live message list, the typing indicator and the generation counter."""

    def __init__(
        self,
        client,
        identity: SessionIdentity,
        *,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], int] = now_ms,
        on_message: Callable[[Message], None] | None = None,
        on_typing: Callable[[bool], None] | None = None,
        fallback_text: str = FALLBACK_TEXT,
    ):
        self._client = client
        self._identity = identity
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._on_message = on_message
        self._on_typing = on_typing
        self._fallback_text = fallback_text

        self.messages: list[Message] = []
        self.typing = False
        self.generation = 0

    def _append(self, sender: Sender, text: str) -> Message:
        now = self._clock()
        message = Message(id=new_id(now), sender=sender, text=text, timestamp=now)
        self.messages.append(message)
        if self._on_message:
            self._on_message(message)
        return message

    def _set_typing(self, typing: bool):
        if self.typing == typing:
            return
        self.typing = typing
        if self._on_typing:
            self._on_typing(typing)

    def replace_messages(self, messages: list[Message]):
        self.messages = list(messages)

    def cancel(self):
        """Invalidate the live pipeline and clear the typing indicator."""
        self.generation += 1
        self._set_typing(False)

    async def submit(self, text: str) -> None:
        """Send `text` and deliver the reply. Never raises for network or reply errors."""
        text = text.strip()
        if not text:
            return

        self.generation += 1
        generation = self.generation

        greeting = await self._identity.ensure_session_open_sent(self._client)
        if greeting:
            self._append(Sender.ASSISTANT, greeting)

        self._append(Sender.USER, text)
        if generation != self.generation:
            return

        self._set_typing(True)
        try:
            data = await self._client.chat(text, self._identity.session)
            if generation != self.generation:
                logger.debug("Discarding stale reply for generation %d", generation)
                return
            await self._deliver(parse_chat_reply(data), generation)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Chat delivery failed: %s", exc)
            if generation == self.generation:
                self._append(Sender.ASSISTANT, self._fallback_text)
        finally:
            if generation == self.generation:
                self._set_typing(False)

    async def _deliver(self, reply: ChatReply, generation: int):
        chunks = reply.chunks
        if not chunks:
            return

        if not reply.allow_multi_message or len(chunks) == 1:
            texts = [_chunk_text(chunk) for chunk in chunks]
            for text in texts:
                self._append(Sender.ASSISTANT, text)
            return

        last = len(chunks) - 1
        for index, chunk in enumerate(chunks):
            if generation != self.generation:
                return
            text = _chunk_text(chunk)

            self._set_typing(True)
            await self._sleep(typing_delay_ms(text, self._rng) / 1000)
            if generation != self.generation:
                return

            self._append(Sender.ASSISTANT, text)
            self._set_typing(False)

            if index < last:
                await self._sleep(inter_message_pause_ms(self._rng) / 1000)
