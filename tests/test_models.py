import re

import pytest
from pydantic import ValidationError

from ahichat.models import (
    Conversation,
    Message,
    SelectionMode,
    SelectionState,
    Sender,
    Session,
    new_id,
)


def test_message_text_must_not_be_blank():
    with pytest.raises(ValidationError):
        Message(id="1", sender=Sender.USER, text="   ", timestamp=1)


def test_legacy_sender_name():
    message = Message(id="1", sender="ahi", text="hey", timestamp=1)
    assert message.sender is Sender.ASSISTANT


def test_conversation_bounds_are_checked():
    with pytest.raises(ValidationError):
        Conversation(id="c", started_at=10, last_updated_at=5)


def test_conversation_serializes_camel_case():
    conv = Conversation(id="c", started_at=1, last_updated_at=2)
    assert conv.model_dump(by_alias=True) == {
        "id": "c",
        "messages": [],
        "startedAt": 1,
        "lastUpdatedAt": 2,
    }
    assert Conversation.model_validate({"id": "c", "startedAt": 1, "lastUpdatedAt": 2}) == conv


def test_sorted_messages_orders_by_timestamp():
    conv = Conversation(
        id="c",
        messages=[
            Message(id="b", sender=Sender.USER, text="second", timestamp=20),
            Message(id="a", sender=Sender.ASSISTANT, text="first", timestamp=10),
        ],
        started_at=10,
        last_updated_at=20,
    )
    assert [m.id for m in conv.sorted_messages()] == ["a", "b"]


def test_session_aliases():
    assert Session.model_validate({"id": "s", "startedAt": 5}).started_at == 5


def test_selection_state_invariant():
    assert SelectionState().mode is SelectionMode.IDLE
    with pytest.raises(ValidationError):
        SelectionState(mode=SelectionMode.SELECTING)
    with pytest.raises(ValidationError):
        SelectionState(mode=SelectionMode.IDLE, selected_ids=frozenset({"x"}))


def test_new_id_format():
    ids = {new_id(1234) for _ in range(20)}
    assert len(ids) == 20
    assert all(re.fullmatch(r"1234-[0-9a-z]+", i) for i in ids)
