"""Simulated typing delays for staged reply delivery."""

from __future__ import annotations

import random

from .config import INTER_MESSAGE_PAUSE_MS, TYPING_DELAY_TIERS_MS


def word_count(text: str) -> int:
    return len(text.split())


def _band(text: str) -> tuple[int, int]:
    words = word_count(text)
    for max_words, band in TYPING_DELAY_TIERS_MS:
        if max_words is None or words <= max_words:
            return band
    return TYPING_DELAY_TIERS_MS[-1][1]


def minimum_typing_delay_ms(text: str) -> int:
    """Lower edge of the delay band for `text`."""
    return _band(text)[0]


def typing_delay_ms(text: str, rng: random.Random) -> float:
    """Delay before a chunk appears, uniform within its word-count tier."""
    low, high = _band(text)
    return rng.uniform(low, high)


def inter_message_pause_ms(rng: random.Random) -> float:
    low, high = INTER_MESSAGE_PAUSE_MS
    return rng.uniform(low, high)
