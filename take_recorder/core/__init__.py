"""Core recording session components."""

from take_recorder.core.controls import Controls
from take_recorder.core.protocols import CaptureDevice, OutputRouter, PlaybackDevice, SessionObserver
from take_recorder.core.session import RecordingSession
from take_recorder.core.states import ElapsedKind, Event, SessionState

__all__ = [
    "CaptureDevice",
    "Controls",
    "ElapsedKind",
    "Event",
    "OutputRouter",
    "PlaybackDevice",
    "RecordingSession",
    "SessionObserver",
    "SessionState",
]
