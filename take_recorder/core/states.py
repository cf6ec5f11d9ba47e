"""Session states, events and the transition table.

Transitions are keyed by ``(state, event)`` and name both the target state
and the side effect the session must run. Any pair missing from the table is
a contract violation.
"""

from dataclasses import dataclass
from enum import Enum


class SessionState(Enum):
    """States of a recording session."""

    EMPTY = "empty"
    RECORDING = "recording"
    PAUSED = "paused"
    PLAYING = "playing"
    CANCELLED = "cancelled"
    SAVED = "saved"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CANCELLED, SessionState.SAVED)


class Event(Enum):
    """Events that drive state transitions."""

    # User intents
    RECORD = "record"
    TOGGLE_PLAYBACK = "toggle_playback"
    CANCEL = "cancel"
    SAVE = "save"
    # Device and merge reports
    PLAYBACK_FINISHED = "playback_finished"
    FAIL = "fail"

    @property
    def is_intent(self) -> bool:
        return self in (Event.RECORD, Event.TOGGLE_PLAYBACK, Event.CANCEL, Event.SAVE)


class Effect(Enum):
    """Side effects run when a transition is taken."""

    START_RECORDING = "start_recording"
    PAUSE_RECORDING = "pause_recording"
    RESUME_RECORDING = "resume_recording"
    START_PLAYBACK = "start_playback"
    PAUSE_PLAYBACK = "pause_playback"
    FINISH_PLAYBACK = "finish_playback"
    CANCEL = "cancel"
    SAVE = "save"
    HALT = "halt"


class ElapsedKind(Enum):
    """Which elapsed-time counter changed."""

    RECORDING = "recording"
    PLAYBACK = "playback"


@dataclass(frozen=True)
class Transition:
    target: SessionState
    effect: Effect


NON_TERMINAL_STATES = (
    SessionState.EMPTY,
    SessionState.RECORDING,
    SessionState.PAUSED,
    SessionState.PLAYING,
    SessionState.ERROR,
)

TRANSITIONS: dict[tuple[SessionState, Event], Transition] = {
    (SessionState.EMPTY, Event.RECORD): Transition(SessionState.RECORDING, Effect.START_RECORDING),
    (SessionState.RECORDING, Event.RECORD): Transition(SessionState.PAUSED, Effect.PAUSE_RECORDING),
    (SessionState.PAUSED, Event.RECORD): Transition(SessionState.RECORDING, Effect.RESUME_RECORDING),
    (SessionState.PAUSED, Event.TOGGLE_PLAYBACK): Transition(
        SessionState.PLAYING, Effect.START_PLAYBACK
    ),
    (SessionState.PLAYING, Event.TOGGLE_PLAYBACK): Transition(
        SessionState.PAUSED, Effect.PAUSE_PLAYBACK
    ),
    (SessionState.PLAYING, Event.PLAYBACK_FINISHED): Transition(
        SessionState.PAUSED, Effect.FINISH_PLAYBACK
    ),
}

for _state in NON_TERMINAL_STATES:
    TRANSITIONS[(_state, Event.CANCEL)] = Transition(SessionState.CANCELLED, Effect.CANCEL)
    TRANSITIONS[(_state, Event.SAVE)] = Transition(SessionState.SAVED, Effect.SAVE)
    if _state is not SessionState.ERROR:
        TRANSITIONS[(_state, Event.FAIL)] = Transition(SessionState.ERROR, Effect.HALT)
del _state


def lookup(state: SessionState, event: Event) -> Transition | None:
    """Return the transition for ``event`` in ``state``, or None if there is none."""
    return TRANSITIONS.get((state, event))
