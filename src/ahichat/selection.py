"""Long-press / tap selection state machine for bulk message deletion.

Transitions are pure: each takes the current state and returns the next one.
Only the delete action has an effect outside the state, and that effect
(persisting the surviving messages) belongs to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

from .models import Message, SelectionMode, SelectionState

IDLE = SelectionState()


@dataclass(frozen=True)
class LongPress:
    message_id: str


@dataclass(frozen=True)
class Tap:
    message_id: str


@dataclass(frozen=True)
class Cancel:
    pass


SelectionEvent = Union[LongPress, Tap, Cancel]


def _with_selection(selected: frozenset[str]) -> SelectionState:
    if not selected:
        return IDLE
    return SelectionState(mode=SelectionMode.SELECTING, selected_ids=selected)


def _toggle(state: SelectionState, message_id: str) -> SelectionState:
    selected = state.selected_ids
    if message_id in selected:
        return _with_selection(selected - {message_id})
    return _with_selection(selected | {message_id})


def long_press(state: SelectionState, message_id: str) -> SelectionState:
    """Enter selection mode with `message_id`, or toggle it when already selecting."""
    if state.mode is SelectionMode.IDLE:
        return _with_selection(frozenset({message_id}))
    return _toggle(state, message_id)


def tap(state: SelectionState, message_id: str) -> SelectionState:
    """Toggle `message_id`; inert outside selection mode."""
    if state.mode is SelectionMode.IDLE:
        return state
    return _toggle(state, message_id)


def cancel(state: SelectionState) -> SelectionState:
    return IDLE


def transition(state: SelectionState, event: SelectionEvent) -> SelectionState:
    if isinstance(event, LongPress):
        return long_press(state, event.message_id)
    if isinstance(event, Tap):
        return tap(state, event.message_id)
    if isinstance(event, Cancel):
        return cancel(state)
    raise TypeError(f"unknown selection event: {event!r}")


def delete_selected_messages(
    messages: Iterable[Message], state: SelectionState
) -> list[Message]:
    """Messages not in the selection, in their original order."""
    return [m for m in messages if m.id not in state.selected_ids]


class SelectionController:
    """Holds the selection state for one chat screen."""

    def __init__(self):
        self.state = IDLE

    @property
    def selecting(self) -> bool:
        return self.state.mode is SelectionMode.SELECTING

    def dispatch(self, event: SelectionEvent) -> SelectionState:
        self.state = transition(self.state, event)
        return self.state

    def take_deletion(self, messages: Iterable[Message]) -> list[Message] | None:
        """Apply the delete action and return to Idle.

        Returns the surviving messages, or None when nothing was selected.
        """
        state, self.state = self.state, IDLE
        if not state.selected_ids:
            return None
        return delete_selected_messages(messages, state)
