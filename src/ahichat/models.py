"""Data models for messages, conversations, sessions and selection state."""

from __future__ import annotations

import random
import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id(now: int | None = None) -> str:
    """Return an id of the form ``<epoch-ms>-<random base36>``."""
    n = random.getrandbits(52)
    suffix = ""
    while n:
        n, rem = divmod(n, 36)
        suffix = _BASE36[rem] + suffix
    return f"{now if now is not None else now_ms()}-{suffix or '0'}"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    sender: Sender
    text: str
    timestamp: int

    @field_validator("sender", mode="before")
    @classmethod
    def _legacy_sender(cls, value):
        # Older stored histories name the assistant "ahi"
        if value == "ahi":
            return Sender.ASSISTANT
        return value

    @field_validator("text")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message text must not be blank")
        return value


class Conversation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    messages: list[Message] = []
    started_at: int = Field(alias="startedAt")
    last_updated_at: int = Field(alias="lastUpdatedAt")

    @model_validator(mode="after")
    def _ordered_bounds(self) -> Conversation:
        if self.started_at > self.last_updated_at:
            raise ValueError("startedAt must not be after lastUpdatedAt")
        return self

    def sorted_messages(self) -> list[Message]:
        """Messages in ascending timestamp order, insertion order kept on ties."""
        return sorted(self.messages, key=lambda m: m.timestamp)


class Session(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    started_at: int = Field(alias="startedAt")


class SelectionMode(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"


class SelectionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: SelectionMode = SelectionMode.IDLE
    selected_ids: frozenset[str] = frozenset()

    @model_validator(mode="after")
    def _mode_matches_selection(self) -> SelectionState:
        if (self.mode is SelectionMode.IDLE) != (not self.selected_ids):
            raise ValueError("Idle iff nothing is selected")
        return self


class ReplyChunk(BaseModel):
    id: str | None = None
    text: str = ""


class ChatReply(BaseModel):
    chunks: list[ReplyChunk] = []
    allow_multi_message: bool = False
    response_mode: str | None = None


class HistoryBuckets(BaseModel):
    today: list[Conversation] = []
    yesterday: list[Conversation] = []
    earlier: list[Conversation] = []
