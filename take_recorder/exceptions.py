"""Custom exceptions for the take recorder."""

from enum import Enum
from typing import Any


class TakeRecorderError(Exception):
    """Base exception for all take recorder errors."""


class DeviceNotFoundError(TakeRecorderError):
    """Raised when a requested audio device cannot be found."""

    def __init__(self, device_name: str, device_type: str = "device") -> None:
        self.device_name = device_name
        self.device_type = device_type
        super().__init__(f"{device_type.capitalize()} not found: '{device_name}'")


class NoDevicesAvailableError(TakeRecorderError):
    """Raised when no audio devices of the required type are available."""

    def __init__(self, device_type: str) -> None:
        self.device_type = device_type
        super().__init__(f"No {device_type} devices available")


class AudioCaptureError(TakeRecorderError):
    """Raised when audio capture or encoding fails."""


class AudioPlaybackError(TakeRecorderError):
    """Raised when audio cannot be decoded or played."""


class RoutingError(TakeRecorderError):
    """Raised when the output port override cannot be applied."""


class SessionError(TakeRecorderError):
    """Raised when the recording session encounters an error."""


class InvalidTransitionError(SessionError):
    """Raised when an event arrives in a state that has no transition for it."""

    def __init__(self, state: Any, event: Any) -> None:
        self.state = state
        self.event = event
        super().__init__(f"No transition from {state.name} on {event.name}")


class MergeErrorKind(Enum):
    """Reasons a track merge can fail."""

    URLS_NOT_UNIQUE = "source and destination are the same artifact"
    INVALID_OPTIONS = "invalid merge options"
    DESTINATION_TRACK = "destination has no readable audio track"
    MERGING_TRACK = "source has no readable audio track"
    EXPORT_SESSION = "export could not be created"
    FAILED = "export failed"
    CANCELLED = "export was cancelled"


class MergeError(TakeRecorderError):
    """Raised or reported when merging two takes fails.

    Attributes:
        kind: Which step of the merge failed.
        cause: Underlying exception for ``FAILED`` and track errors.
    """

    def __init__(self, kind: MergeErrorKind, cause: BaseException | None = None) -> None:
        self.kind = kind
        self.cause = cause
        message = kind.value if cause is None else f"{kind.value}: {cause}"
        super().__init__(message)
