"""Chat session facade: delivery, selection and persistence for one session."""

from __future__ import annotations

import asyncio
import logging
import random
import sqlite3
from typing import Callable

from .config import EARLIER_MERGED_ID, YESTERDAY_MERGED_ID
from .delivery import DeliveryScheduler, Sleep
from .models import Conversation, Message, SelectionState, now_ms
from .selection import Cancel, LongPress, SelectionController, Tap
from .session import SessionIdentity
from .storage import ConversationStore, bucket_conversations, merge_for_view

logger = logging.getLogger(__name__)

BUCKET_VIEW_IDS = {
    "yesterday": YESTERDAY_MERGED_ID,
    "earlier": EARLIER_MERGED_ID,
}


class ChatSession:
    """Wires the delivery scheduler, selection controller and conversation store.

    The conversation for the current session is saved after every appended
    message, after a deletion and on close. Empty conversations are never saved.
    """

    def __init__(
        self,
        client,
        store: ConversationStore,
        *,
        identity: SessionIdentity | None = None,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], int] = now_ms,
        on_message: Callable[[Message], None] | None = None,
        on_typing: Callable[[bool], None] | None = None,
    ):
        self.client = client
        self.store = store
        self.identity = identity or SessionIdentity(store, clock=clock)
        self.selection = SelectionController()
        self._clock = clock
        self._listener = on_message

        self.scheduler = DeliveryScheduler(
            client,
            self.identity,
            rng=rng,
            clock=clock,
            on_message=self._handle_message,
            sleep=sleep,
            on_typing=on_typing,
        )

    @property
    def messages(self) -> list[Message]:
        return self.scheduler.messages

    def start(self) -> list[Message]:
        """Start or rejoin the session, restoring its stored messages."""
        session = self.identity.start_session()
        stored = self.store.get(session.id)
        if stored is not None:
            self.scheduler.replace_messages(stored.sorted_messages())
        return self.messages

    async def send(self, text: str) -> None:
        await self.scheduler.submit(text)

    def _handle_message(self, message: Message):
        self.persist()
        if self._listener:
            self._listener(message)

    def persist(self) -> Conversation | None:
        """Save the current messages under the session id. Returns what was saved."""
        if not self.messages:
            return None

        session = self.identity.start_session()
        conversation = Conversation(
            id=session.id,
            messages=list(self.messages),
            started_at=session.started_at,
            last_updated_at=max(self._clock(), session.started_at),
        )
        try:
            self.store.save(conversation)
        except sqlite3.Error:
            logger.warning("Failed to save conversation %s", session.id, exc_info=True)
            return None
        return conversation

    # -- selection -----------------------------------------------------------

    def long_press(self, message_id: str) -> SelectionState:
        return self.selection.dispatch(LongPress(message_id))

    def tap(self, message_id: str) -> SelectionState:
        return self.selection.dispatch(Tap(message_id))

    def cancel_selection(self) -> SelectionState:
        return self.selection.dispatch(Cancel())

    def delete_selected(self) -> list[Message]:
        """Remove the selected messages, persist the rest and leave selection mode."""
        survivors = self.selection.take_deletion(self.messages)
        if survivors is None:
            return self.messages

        removed = len(self.messages) - len(survivors)
        self.scheduler.replace_messages(survivors)
        logger.debug("Deleted %d selected messages", removed)

        if survivors:
            self.persist()
        else:
            try:
                self.store.delete_by_id(self.identity.session.id)
            except sqlite3.Error:
                logger.warning(
                    "Failed to remove conversation %s", self.identity.session.id, exc_info=True
                )
        return self.messages

    # -- history -------------------------------------------------------------

    def open_conversation(self, conversation_id: str) -> Conversation | None:
        return self.store.get(conversation_id)

    def view_bucket(self, name: str, now: int | None = None) -> Conversation | None:
        """Merged read-only thread for the "yesterday" or "earlier" bucket."""
        if name not in BUCKET_VIEW_IDS:
            raise ValueError(f"no merged view for bucket {name!r}")
        buckets = bucket_conversations(self.store.load(), now if now is not None else self._clock())
        return merge_for_view(getattr(buckets, name), BUCKET_VIEW_IDS[name])

    async def close(self):
        """Teardown: stop any live delivery, save, and release the client."""
        self.scheduler.cancel()
        self.persist()
        await self.client.aclose()
