"""Protocol definitions for the collaborators of a recording session.

The session depends only on these contracts, so tests can drive it with
in-memory fakes that simulate encode/decode errors and completion timing.
"""

from pathlib import Path
from typing import Callable, Protocol

from take_recorder.config import AudioPort
from take_recorder.core.states import ElapsedKind, SessionState

ErrorHandler = Callable[[str], None]
FinishedHandler = Callable[[], None]


class CaptureDevice(Protocol):
    """Protocol for audio capture devices that record into a file.

    A stopped recording cannot be resumed; a new take needs a new file.
    ``on_error`` is assigned by the session and may be invoked from any thread.
    """

    on_error: ErrorHandler | None

    @property
    def is_recording(self) -> bool:
        """Whether capture is currently running."""
        ...

    @property
    def path(self) -> Path | None:
        """File the current or last recording was written to."""
        ...

    def start_recording(self, path: Path) -> None:
        """Start recording into ``path``, replacing any existing file.

        Raises:
            AudioCaptureError: If capture cannot be started.
        """
        ...

    def stop_recording(self) -> None:
        """Stop recording and finalize the file."""
        ...

    def discard_current_recording(self) -> None:
        """Stop recording and delete the file being written."""
        ...


class PlaybackDevice(Protocol):
    """Protocol for file-based audio players.

    After playback ends naturally the position returns to 0 and
    ``on_finished`` is invoked. Both callbacks may be invoked from any thread.
    """

    on_error: ErrorHandler | None
    on_finished: FinishedHandler | None

    @property
    def is_loaded(self) -> bool:
        """Whether a file has been loaded."""
        ...

    @property
    def is_playing(self) -> bool:
        """Whether audio is currently being played."""
        ...

    @property
    def position(self) -> float:
        """Current playback position in seconds."""
        ...

    def load(self, path: Path) -> None:
        """Load ``path`` for playback, positioned at the start.

        Raises:
            AudioPlaybackError: If the file cannot be decoded.
        """
        ...

    def play(self) -> None:
        """Start or resume playback from the current position."""
        ...

    def pause(self) -> None:
        """Pause playback, keeping the position."""
        ...

    def stop(self) -> None:
        """Stop playback and rewind to the start."""
        ...


class OutputRouter(Protocol):
    """Protocol for overriding the physical output route."""

    def apply(self, port: AudioPort) -> None:
        """Route playback to ``port``.

        Raises:
            RoutingError: If the override cannot be applied.
        """
        ...


class SessionObserver(Protocol):
    """Receives notifications from a recording session.

    All methods are called on the thread that pumps the session. Observers
    may implement only the methods they care about.
    """

    def state_changed(self, state: SessionState, message: str | None) -> None:
        """The session entered ``state``; ``message`` is set for ERROR."""
        ...

    def elapsed_changed(self, kind: ElapsedKind, value: int) -> None:
        """An elapsed-time counter changed; ``value`` is in ticks."""
        ...

    def port_changed(self, port: AudioPort) -> None:
        """The output port changed."""
        ...

    def did_cancel(self) -> None:
        """The session was cancelled and its artifacts discarded."""
        ...

    def did_save(self, path: Path) -> None:
        """The session was saved; ``path`` now belongs to the observer."""
        ...
