"""Recording session orchestration.

This module provides the RecordingSession state machine that coordinates a
capture device, a playback device and the track merger across several takes.

All state changes happen on one control thread: the host calls
``process_pending()``, which applies queued events in arrival order. Device
callbacks, tickers and merge workers never touch session state directly; they
only post events to the queue.
"""

import logging
import queue
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

from take_recorder.config import AudioPort, SessionConfig
from take_recorder.core.controls import Controls
from take_recorder.core.protocols import (
    CaptureDevice,
    OutputRouter,
    PlaybackDevice,
    SessionObserver,
)
from take_recorder.core.states import Effect, ElapsedKind, Event, SessionState, lookup
from take_recorder.core.ticker import Ticker
from take_recorder.exceptions import (
    AudioCaptureError,
    AudioPlaybackError,
    InvalidTransitionError,
    MergeError,
    MergeErrorKind,
    RoutingError,
    SessionError,
)
from take_recorder.merge.track_merger import (
    ExportOperation,
    MergeOutcome,
    MergeRequest,
    TrackMerger,
)
from take_recorder.storage.clip_store import ClipStore

logger = logging.getLogger(__name__)

TickerFactory = Callable[[float, Callable[[], None]], Any]

# Intents that have to wait for an outstanding merge
_DEFERRABLE = (Event.RECORD, Event.TOGGLE_PLAYBACK, Event.SAVE)


@dataclass(frozen=True)
class _Dispatch:
    event: Event
    message: str | None = None


@dataclass(frozen=True)
class _Tick:
    kind: ElapsedKind
    generation: int


@dataclass(frozen=True)
class _MergeCompleted:
    outcome: MergeOutcome


@dataclass(frozen=True)
class _PortRequest:
    port: AudioPort


class RecordingSession:
    """Orchestrates one record/pause/preview/save flow.

    The first take is captured straight into the output file. Every later
    take goes to a fresh file that is appended to the output when recording
    pauses, so the output always holds the takes in recording order.

    Args:
        config: Session configuration.
        recorder: Capture device (default: sounddevice microphone).
        player: Playback device (default: sounddevice output).
        router: Output port router (default: PulseAudio).
        merger: Track merger (default: TrackMerger on the clip store).
        clip_store: Artifact store (default: one in ``config.storage_dir``).
        observers: Receivers of state, elapsed-time and outcome notifications.
        ticker_factory: Builds the periodic elapsed-time tickers.

    Example:
        session = RecordingSession(SessionConfig(output_format=OutputFormat.FLAC))
        session.record()
        while not session.state.is_terminal:
            session.process_pending(timeout=0.05)
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        recorder: CaptureDevice | None = None,
        player: PlaybackDevice | None = None,
        router: OutputRouter | None = None,
        merger: TrackMerger | None = None,
        clip_store: ClipStore | None = None,
        observers: Iterable[SessionObserver] = (),
        ticker_factory: TickerFactory = Ticker,
    ) -> None:
        self._config = config
        self._clip_store = clip_store or ClipStore(config.storage_dir, config.output_format)
        self._recorder = recorder or self._create_recorder()
        self._player = player or self._create_player()
        self._router = router or self._create_router()
        self._merger = merger or TrackMerger(self._clip_store)
        self._observers = list(observers)
        self._ticker_factory = ticker_factory
        self._events: queue.Queue[object] = queue.Queue()

        self._state = SessionState.EMPTY
        self._previous_state = SessionState.EMPTY
        self._error_message: str | None = None
        self._audio_port = AudioPort.DEFAULT
        self._recording_elapsed = 0
        self._playback_elapsed = 0
        self._tickers: dict[ElapsedKind, Any] = {}
        self._generations = {kind: 0 for kind in ElapsedKind}
        self._committed_takes = 0
        self._pending_merge: ExportOperation | None = None
        self._deferred: list[Event] = []
        self._save_pending = False

        self._output_path = self._clip_store.new_clip()
        self._capture_path = self._output_path

        self._effects: dict[Effect, Callable[[], None]] = {
            Effect.START_RECORDING: self._start_recording,
            Effect.PAUSE_RECORDING: self._pause_recording,
            Effect.RESUME_RECORDING: self._resume_recording,
            Effect.START_PLAYBACK: self._start_playback,
            Effect.PAUSE_PLAYBACK: self._pause_playback,
            Effect.FINISH_PLAYBACK: self._finish_playback,
            Effect.CANCEL: self._cancel,
            Effect.SAVE: self._save,
            Effect.HALT: self._halt,
        }

        self._recorder.on_error = self._report_failure
        self._player.on_error = self._report_failure
        self._player.on_finished = lambda: self.post(_Dispatch(Event.PLAYBACK_FINISHED))

        self._apply_port(config.default_port)
        logger.info("Session ready, output: %s", self._output_path)

    def _create_recorder(self) -> CaptureDevice:
        from take_recorder.devices.capture import SoundDeviceRecorder
        from take_recorder.devices.enumerator import DeviceEnumerator

        if self._config.input_device:
            device = DeviceEnumerator().find_microphone(self._config.input_device)
            logger.info("Using microphone: %s", device)
            return SoundDeviceRecorder(
                self._config.audio,
                self._config.output_format,
                device_index=device.index,
                device_name=device.name,
            )
        return SoundDeviceRecorder(self._config.audio, self._config.output_format)

    def _create_player(self) -> PlaybackDevice:
        from take_recorder.devices.enumerator import DeviceEnumerator
        from take_recorder.devices.playback import SoundDevicePlayer

        if self._config.output_device:
            device = DeviceEnumerator().find_output(self._config.output_device)
            logger.info("Using output: %s", device)
            return SoundDevicePlayer(device_index=device.index, device_name=device.name)
        return SoundDevicePlayer()

    def _create_router(self) -> OutputRouter:
        from take_recorder.devices.routing import PulseOutputRouter

        return PulseOutputRouter()

    # -- Properties ---------------------------------------------------------

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def previous_state(self) -> SessionState:
        return self._previous_state

    @property
    def error_message(self) -> str | None:
        """Message of the current ERROR state, if any."""
        return self._error_message if self._state is SessionState.ERROR else None

    @property
    def output_path(self) -> Path:
        """The accumulated recording."""
        return self._output_path

    @property
    def capture_path(self) -> Path:
        """The file the current (or last) take is captured into."""
        return self._capture_path

    @property
    def audio_port(self) -> AudioPort:
        return self._audio_port

    @property
    def recording_elapsed(self) -> int:
        """Recording time in ticks."""
        return self._recording_elapsed

    @property
    def playback_elapsed(self) -> int:
        """Playback time in ticks."""
        return self._playback_elapsed

    @property
    def committed_takes(self) -> int:
        """Number of takes already contained in the output."""
        return self._committed_takes

    @property
    def merge_in_flight(self) -> bool:
        return self._pending_merge is not None

    @property
    def controls(self) -> Controls:
        return Controls.for_state(self._state, self._config.allow_port_selection)

    def add_observer(self, observer: SessionObserver) -> None:
        self._observers.append(observer)

    # -- Events in ----------------------------------------------------------

    def post(self, message: object) -> None:
        """Queue a message for the control thread. Safe to call from any thread."""
        self._events.put(message)

    def record(self) -> None:
        """Start, pause or resume recording."""
        self.post(_Dispatch(Event.RECORD))

    def toggle_playback(self) -> None:
        """Start, pause or resume playback."""
        self.post(_Dispatch(Event.TOGGLE_PLAYBACK))

    def cancel(self) -> None:
        self.post(_Dispatch(Event.CANCEL))

    def save(self) -> None:
        self.post(_Dispatch(Event.SAVE))

    def set_port(self, port: AudioPort) -> None:
        self.post(_PortRequest(port))

    def process_pending(self, timeout: float | None = None) -> int:
        """Apply queued events on the calling thread, in arrival order.

        Args:
            timeout: Seconds to wait for the first event (None or 0 to not wait).

        Returns:
            Number of events processed.

        Raises:
            InvalidTransitionError: If an intent has no transition in the current state.
        """
        try:
            if timeout:
                message = self._events.get(timeout=timeout)
            else:
                message = self._events.get_nowait()
        except queue.Empty:
            return 0

        processed = 0
        while True:
            self._handle(message)
            processed += 1
            try:
                message = self._events.get_nowait()
            except queue.Empty:
                return processed

    def close(self, timeout: float = 30.0) -> None:
        """Stop all I/O and release the session.

        Artifacts are deleted unless the session was saved. A save that is
        still waiting for its final merge is completed first; if the merge
        does not finish within ``timeout`` it is cancelled and the earlier
        takes are saved. A speaker override is undone.
        """
        if self._state is SessionState.SAVED and self._pending_merge is not None:
            operation = self._pending_merge
            if not operation.wait(timeout):
                logger.warning("Final merge did not finish in time, saving earlier takes")
                operation.cancel()
            self.process_pending()
            if self._pending_merge is operation:
                self._pending_merge = None
                if self._save_pending:
                    self._hand_over()

        self._stop_tickers()
        if self._recorder.is_recording:
            self._recorder.stop_recording()
        self._player.stop()

        if self._state is not SessionState.SAVED:
            if self._pending_merge is not None:
                self._pending_merge.cancel()
            self._clip_store.discard_all()

        if self._audio_port is AudioPort.SPEAKER:
            self._apply_port(AudioPort.DEFAULT)
        logger.info("Session closed")

    def __enter__(self) -> "RecordingSession":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    # -- Dispatch -----------------------------------------------------------

    def _handle(self, message: object) -> None:
        if isinstance(message, _Dispatch):
            self._dispatch(message.event, message.message)
        elif isinstance(message, _Tick):
            self._on_tick(message)
        elif isinstance(message, _MergeCompleted):
            self._on_merge_completed(message.outcome)
        elif isinstance(message, _PortRequest):
            self._change_port(message.port)
        else:
            raise SessionError(f"Unknown session message: {message!r}")

    def _dispatch(self, event: Event, message: str | None = None) -> None:
        if (
            event in _DEFERRABLE
            and self._pending_merge is not None
            and not self._state.is_terminal
        ):
            logger.debug("Deferring %s until the merge completes", event.name)
            self._deferred.append(event)
            return

        transition = lookup(self._state, event)
        if transition is None:
            if event.is_intent:
                raise InvalidTransitionError(self._state, event)
            if event is Event.FAIL:
                logger.warning("Ignoring error in state %s: %s", self._state.name, message)
            else:
                logger.debug("Ignoring %s in state %s", event.name, self._state.name)
            return

        self._previous_state = self._state
        self._state = transition.target
        if transition.target is SessionState.ERROR:
            self._error_message = message or "Unknown error"
            logger.error("Session error: %s", self._error_message)
        logger.info("State %s -> %s", self._previous_state.name, self._state.name)

        try:
            self._effects[transition.effect]()
        except (AudioCaptureError, AudioPlaybackError, MergeError) as e:
            self._notify("state_changed", self._state, None)
            self._dispatch(Event.FAIL, str(e))
            return

        self._notify("state_changed", self._state, self.error_message)

    def _report_failure(self, message: str) -> None:
        self.post(_Dispatch(Event.FAIL, message))

    # -- Recording ----------------------------------------------------------

    def _start_recording(self) -> None:
        self._player.stop()
        self._recording_elapsed = 0
        self._notify("elapsed_changed", ElapsedKind.RECORDING, 0)
        self._committed_takes = 0
        self._capture_path = self._output_path
        self._capture_path.unlink(missing_ok=True)
        self._recorder.start_recording(self._capture_path)
        self._start_ticker(ElapsedKind.RECORDING)

    def _resume_recording(self) -> None:
        # A stopped capture cannot be appended to; record into a new take
        self._player.stop()
        self._capture_path = self._clip_store.new_clip()
        self._recorder.start_recording(self._capture_path)
        self._start_ticker(ElapsedKind.RECORDING)

    def _pause_recording(self) -> None:
        self._stop_ticker(ElapsedKind.RECORDING)
        self._recorder.stop_recording()
        self._commit_take()

    def _commit_take(self) -> None:
        take = self._capture_path
        if self._committed_takes == 0 and take == self._output_path:
            self._committed_takes = 1
            logger.info("First take recorded into %s, nothing to merge", take.name)
            self._player.load(take)
            return

        try:
            self._pending_merge = self._submit_merge(take)
        except MergeError as e:
            if e.kind is not MergeErrorKind.URLS_NOT_UNIQUE:
                raise
            logger.info("Nothing to merge for %s", take.name)
            self._player.load(take)

    def _submit_merge(self, take: Path) -> ExportOperation:
        request = MergeRequest(
            source=take,
            destination=self._output_path,
            output_format=self._config.output_format,
            delete_source_on_success=True,
        )
        return self._merger.merge(request, lambda outcome: self.post(_MergeCompleted(outcome)))

    def _on_merge_completed(self, outcome: MergeOutcome) -> None:
        if self._pending_merge is None or self._pending_merge.request != outcome.request:
            logger.debug("Ignoring result of an unknown merge")
            return
        self._pending_merge = None

        if self._state is SessionState.CANCELLED:
            # The export may have committed after cancellation
            self._clip_store.delete(outcome.request.target)
            self._clip_store.delete(outcome.request.source)
            self._clip_store.discard_all()
            logger.info("Discarded merge result after cancellation")
            return

        if self._state is SessionState.SAVED:
            if outcome.ok:
                self._committed_takes += 1
            else:
                logger.warning("Final take could not be merged, saving earlier takes: %s", outcome.error)
            if self._save_pending:
                self._hand_over()
            return

        if outcome.ok:
            self._committed_takes += 1
            if self._state is not SessionState.ERROR:
                try:
                    self._player.load(self._output_path)
                except AudioPlaybackError as e:
                    self._drop_deferred()
                    self._dispatch(Event.FAIL, str(e))
                    return
            self._replay_deferred()
            return

        error = outcome.error
        if error is not None and error.kind is MergeErrorKind.URLS_NOT_UNIQUE:
            try:
                self._player.load(outcome.request.source)
            except AudioPlaybackError as e:
                self._drop_deferred()
                self._dispatch(Event.FAIL, str(e))
                return
            self._replay_deferred()
            return

        if self._state is SessionState.ERROR:
            logger.warning("Merge failed while in error state: %s", error)
            self._replay_deferred()
            return
        self._drop_deferred()
        self._dispatch(Event.FAIL, str(error))

    def _replay_deferred(self) -> None:
        deferred, self._deferred = self._deferred, []
        for event in deferred:
            # An earlier replayed intent may have moved the session on
            if self._pending_merge is None and lookup(self._state, event) is None:
                logger.warning(
                    "Dropping deferred %s, not available in state %s",
                    event.name,
                    self._state.name,
                )
                continue
            self._dispatch(event)

    def _drop_deferred(self) -> None:
        if self._deferred:
            logger.warning(
                "Dropping %d deferred action(s)",
                len(self._deferred),
            )
        self._deferred = []

    # -- Playback -----------------------------------------------------------

    def _start_playback(self) -> None:
        if self._player.is_loaded and self._player.position != 0:
            self._player.play()
            self._start_ticker(ElapsedKind.PLAYBACK)
            return

        self._player.load(self._output_path)
        self._playback_elapsed = 0
        self._notify("elapsed_changed", ElapsedKind.PLAYBACK, 0)
        self._player.play()
        self._start_ticker(ElapsedKind.PLAYBACK)

    def _pause_playback(self) -> None:
        self._stop_ticker(ElapsedKind.PLAYBACK)
        if self._player.is_playing:
            self._player.pause()

    def _finish_playback(self) -> None:
        self._stop_ticker(ElapsedKind.PLAYBACK)

    # -- Terminal and error states ------------------------------------------

    def _halt(self) -> None:
        self._drop_deferred()
        self._stop_tickers()
        if self._recorder.is_recording:
            self._recorder.stop_recording()
        if self._player.is_playing:
            self._player.stop()

    def _cancel(self) -> None:
        self._stop_tickers()
        if self._recorder.is_recording:
            self._recorder.discard_current_recording()
        self._player.stop()
        if self._pending_merge is not None:
            self._pending_merge.cancel()
        self._deferred = []
        self._clip_store.discard_all()
        logger.info("Session cancelled, artifacts discarded")
        self._notify("did_cancel")

    def _save(self) -> None:
        was_recording = self._recorder.is_recording
        self._stop_tickers()
        if was_recording:
            self._recorder.stop_recording()
        self._player.stop()
        self._deferred = []

        if was_recording and self._capture_path != self._output_path:
            try:
                self._pending_merge = self._submit_merge(self._capture_path)
            except MergeError as e:
                logger.warning("Final take could not be merged: %s", e)
            else:
                self._save_pending = True
                logger.info("Merging final take before saving")
                return

        self._hand_over()

    def _hand_over(self) -> None:
        self._save_pending = False
        self._clip_store.release(self._output_path)
        self._clip_store.discard_all()
        if not self._output_path.exists():
            logger.warning("Saving session with no recorded audio")
        logger.info("Session saved to %s", self._output_path)
        self._notify("did_save", self._output_path)

    # -- Elapsed time -------------------------------------------------------

    def _start_ticker(self, kind: ElapsedKind) -> None:
        self._stop_ticker(kind)
        generation = self._generations[kind]
        ticker = self._ticker_factory(
            self._config.tick_interval,
            lambda: self.post(_Tick(kind, generation)),
        )
        self._tickers[kind] = ticker
        ticker.start()

    def _stop_ticker(self, kind: ElapsedKind) -> None:
        ticker = self._tickers.pop(kind, None)
        if ticker is not None:
            ticker.stop()
        # Ticks already queued by the old ticker become stale
        self._generations[kind] += 1

    def _stop_tickers(self) -> None:
        for kind in ElapsedKind:
            self._stop_ticker(kind)

    def _on_tick(self, tick: _Tick) -> None:
        if tick.generation != self._generations[tick.kind]:
            return
        if tick.kind is ElapsedKind.RECORDING:
            self._recording_elapsed += 1
            value = self._recording_elapsed
        else:
            self._playback_elapsed += 1
            value = self._playback_elapsed
        self._notify("elapsed_changed", tick.kind, value)

    # -- Output routing -----------------------------------------------------

    def _change_port(self, port: AudioPort) -> None:
        if not self._config.allow_port_selection:
            logger.warning("Output port selection is disabled, ignoring %s", port.value)
            return
        self._apply_port(port)

    def _apply_port(self, port: AudioPort) -> None:
        try:
            self._router.apply(port)
        except RoutingError as e:
            if port is not AudioPort.DEFAULT:
                logger.warning("Could not route output to %s, using default: %s", port.value, e)
                self._apply_port(AudioPort.DEFAULT)
                return
            logger.warning("Could not restore default output port: %s", e)

        self._audio_port = port
        self._notify("port_changed", port)

    # -- Observers ----------------------------------------------------------

    def _notify(self, method: str, *args: Any) -> None:
        for observer in self._observers:
            callback = getattr(observer, method, None)
            if callback is not None:
                callback(*args)
