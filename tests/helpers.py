"""Test doubles and audio helpers shared by the test suite.

Provides in-memory capture, playback and routing fakes, a manually driven
ticker and helpers for writing and reading short constant-valued tones.
"""

import threading
import time
from pathlib import Path
from typing import Callable

import numpy as np
import soundfile as sf

from take_recorder.config import AudioPort
from take_recorder.core.session import RecordingSession
from take_recorder.core.states import ElapsedKind, SessionState
from take_recorder.exceptions import (
    AudioCaptureError,
    AudioPlaybackError,
    MergeError,
    RoutingError,
)
from take_recorder.merge.track_merger import (
    ExportOperation,
    MergeOutcome,
    MergeRequest,
    TrackMerger,
)

SAMPLE_RATE = 8000


# ---------------------------------------------------------------------------
# Audio helpers
# ---------------------------------------------------------------------------


def write_tone(
    path: Path,
    seconds: float,
    value: float,
    samplerate: int = SAMPLE_RATE,
    channels: int = 1,
) -> Path:
    """Write a constant-valued signal so takes can be told apart after merging."""
    frames = int(round(seconds * samplerate))
    data = np.full((frames, channels), value, dtype=np.float32)
    sf.write(path, data, samplerate)
    return path


def read_audio(path: Path) -> np.ndarray:
    data, _ = sf.read(path, dtype="float32", always_2d=True)
    return data


# ---------------------------------------------------------------------------
# Device fakes
# ---------------------------------------------------------------------------


class FakeRecorder:
    """Capture device that writes one constant-valued take per recording.

    Take ``n`` (0-based) is filled with ``0.1 * (n + 1)`` and lasts
    ``durations[n]`` seconds (or ``default_duration``).
    """

    def __init__(self, samplerate: int = SAMPLE_RATE, default_duration: float = 0.5) -> None:
        self.on_error: Callable[[str], None] | None = None
        self.samplerate = samplerate
        self.default_duration = default_duration
        self.durations: list[float] = []
        self.started: list[Path] = []
        self.values: list[float] = []
        self.fail_on_start: str | None = None
        self._path: Path | None = None
        self._recording = False

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def path(self) -> Path | None:
        return self._path

    def start_recording(self, path: Path) -> None:
        if self.fail_on_start is not None:
            raise AudioCaptureError(self.fail_on_start)
        path.touch()
        self._path = path
        self._recording = True
        self.started.append(path)

    def stop_recording(self) -> None:
        if not self._recording or self._path is None:
            return
        self._recording = False
        take = len(self.values)
        duration = self.durations[take] if take < len(self.durations) else self.default_duration
        value = round(0.1 * (take + 1), 3)
        write_tone(self._path, duration, value, self.samplerate)
        self.values.append(value)

    def discard_current_recording(self) -> None:
        self._recording = False
        if self._path is not None:
            self._path.unlink(missing_ok=True)

    def fail(self, message: str) -> None:
        """Simulate an encode error reported from the capture thread."""
        assert self.on_error is not None
        self.on_error(message)


class FakePlayer:
    """Playback device with a manually advanced position."""

    def __init__(self) -> None:
        self.on_error: Callable[[str], None] | None = None
        self.on_finished: Callable[[], None] | None = None
        self.loads: list[Path] = []
        self.play_calls = 0
        self.fail_on_load: str | None = None
        self._loaded: Path | None = None
        self._position = 0.0
        self._playing = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded is not None

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def position(self) -> float:
        return self._position

    @property
    def loaded(self) -> Path | None:
        return self._loaded

    def load(self, path: Path) -> None:
        if self.fail_on_load is not None or not path.exists():
            raise AudioPlaybackError(self.fail_on_load or f"Failed to decode {path}")
        self.stop()
        self._loaded = path
        self.loads.append(path)

    def play(self) -> None:
        if self._loaded is None:
            raise AudioPlaybackError("No audio loaded for playback")
        self._playing = True
        self.play_calls += 1

    def pause(self) -> None:
        self._playing = False

    def stop(self) -> None:
        self._playing = False
        self._position = 0.0

    def advance(self, seconds: float) -> None:
        self._position += seconds

    def finish(self) -> None:
        """Simulate natural end of playback."""
        self._playing = False
        self._position = 0.0
        assert self.on_finished is not None
        self.on_finished()

    def fail(self, message: str) -> None:
        assert self.on_error is not None
        self.on_error(message)


class FakeRouter:
    def __init__(self, fail_speaker: bool = False) -> None:
        self.fail_speaker = fail_speaker
        self.applied: list[AudioPort] = []

    def apply(self, port: AudioPort) -> None:
        if port is AudioPort.SPEAKER and self.fail_speaker:
            raise RoutingError("No speaker port")
        self.applied.append(port)


class FakeTicker:
    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.running = False

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False

    def fire(self, count: int = 1) -> None:
        for _ in range(count):
            self.callback()


class FakeTickerFactory:
    """Ticker factory whose tickers only tick when told to."""

    def __init__(self) -> None:
        self.tickers: list[FakeTicker] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> FakeTicker:
        ticker = FakeTicker(interval, callback)
        self.tickers.append(ticker)
        return ticker

    @property
    def running(self) -> list[FakeTicker]:
        return [t for t in self.tickers if t.running]

    @property
    def current(self) -> FakeTicker:
        running = self.running
        assert len(running) == 1, f"expected one running ticker, got {len(running)}"
        return running[0]


class RecordingObserver:
    """Collects every session notification."""

    def __init__(self) -> None:
        self.states: list[tuple[SessionState, str | None]] = []
        self.elapsed: list[tuple[ElapsedKind, int]] = []
        self.ports: list[AudioPort] = []
        self.cancelled = 0
        self.saved: list[Path] = []

    def state_changed(self, state: SessionState, message: str | None) -> None:
        self.states.append((state, message))

    def elapsed_changed(self, kind: ElapsedKind, value: int) -> None:
        self.elapsed.append((kind, value))

    def port_changed(self, port: AudioPort) -> None:
        self.ports.append(port)

    def did_cancel(self) -> None:
        self.cancelled += 1

    def did_save(self, path: Path) -> None:
        self.saved.append(path)


def pump_until(
    session: RecordingSession, predicate: Callable[[], bool], timeout: float = 5.0
) -> None:
    """Process session events until ``predicate`` holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached before timeout")
        session.process_pending(timeout=0.01)


def wait_for_merge(session: RecordingSession, timeout: float = 5.0) -> None:
    pump_until(session, lambda: not session.merge_in_flight, timeout)


class BlockingMerger(TrackMerger):
    """Track merger that holds each export until ``release`` is set."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.started = threading.Event()
        self.release = threading.Event()

    def _write_composition(self, operation, partial):
        self.started.set()
        assert self.release.wait(5.0), "export was never released"
        super()._write_composition(operation, partial)


class ManualMerger:
    """Merger whose exports complete only when the test says so."""

    def __init__(self) -> None:
        self.requests: list[MergeRequest] = []
        self.operations: list[ExportOperation] = []
        self._callbacks: list[Callable[[MergeOutcome], None]] = []

    def merge(
        self, request: MergeRequest, on_complete: Callable[[MergeOutcome], None]
    ) -> ExportOperation:
        operation = ExportOperation(request)
        self.requests.append(request)
        self.operations.append(operation)
        self._callbacks.append(on_complete)
        return operation

    def complete(self, index: int = -1, error: MergeError | None = None) -> None:
        request = self.requests[index]
        if error is None:
            self._callbacks[index](MergeOutcome(request, path=request.target))
        else:
            self._callbacks[index](MergeOutcome(request, error=error))
