"""Normalize backend response bodies into canonical reply models."""

from __future__ import annotations

import logging
from typing import Any

from .config import MULTI_MESSAGE_RESPONSE_MODES
from .models import ChatReply, ReplyChunk

logger = logging.getLogger(__name__)


class ReplyFormatError(ValueError):
    """Raised when a backend reply does not have the expected shape."""


def _extract_text(item: Any) -> str:
    """Extract chunk text, accepting both the `content` and legacy `text` fields."""
    if isinstance(item, str):
        return item
    if not isinstance(item, dict):
        return ""
    for field in ("content", "text"):
        value = item.get(field)
        if isinstance(value, str):
            return value
    return ""


def _allow_multi_message(data: dict[str, Any]) -> bool:
    flag = data.get("allowMultiMessage")
    if isinstance(flag, bool):
        return flag
    mode = data.get("responseMode")
    return isinstance(mode, str) and mode.lower() in MULTI_MESSAGE_RESPONSE_MODES


def parse_chat_reply(data: Any) -> ChatReply:
    """Parse a /chat response body into a ChatReply.

    A missing or null ``messages`` list is a valid reply with no chunks.
    Chunks whose text is missing keep an empty text; the caller decides
    how to treat them when their turn comes.
    """
    if not isinstance(data, dict):
        raise ReplyFormatError(f"expected a JSON object, got {type(data).__name__}")

    raw_messages = data.get("messages")
    if raw_messages is None:
        raw_messages = []
    if not isinstance(raw_messages, list):
        raise ReplyFormatError("'messages' is not a list")

    if data.get("fallback"):
        logger.info("Backend returned a fallback reply")

    chunks: list[ReplyChunk] = []
    for item in raw_messages:
        chunk_id = item.get("id") if isinstance(item, dict) else None
        chunks.append(
            ReplyChunk(
                id=chunk_id if isinstance(chunk_id, str) else None,
                text=_extract_text(item),
            )
        )

    mode = data.get("responseMode")
    return ChatReply(
        chunks=chunks,
        allow_multi_message=_allow_multi_message(data),
        response_mode=mode if isinstance(mode, str) else None,
    )


def parse_session_open(data: Any) -> str | None:
    """Return the session-open greeting, or None when there is nothing to show."""
    if not isinstance(data, dict):
        raise ReplyFormatError(f"expected a JSON object, got {type(data).__name__}")
    message = data.get("message")
    if not isinstance(message, str) or not message.strip():
        return None
    return message
