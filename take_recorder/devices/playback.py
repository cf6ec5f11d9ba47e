"""File playback through an output device using sounddevice."""

import logging
import threading
from pathlib import Path
from typing import Any

import numpy as np
import sounddevice as sd
import soundfile as sf
from numpy.typing import NDArray

from take_recorder.core.protocols import ErrorHandler, FinishedHandler
from take_recorder.exceptions import AudioPlaybackError

logger = logging.getLogger(__name__)


class SoundDevicePlayer:
    """Plays a decoded audio file with pause/resume support.

    The whole file is decoded on ``load`` and streamed from memory by the
    PortAudio callback. Pausing closes the stream but keeps the position.

    Args:
        device_index: Sounddevice output index (None for the system default).
        device_name: Human-readable device name for logging.
        block_size: Frames per output block.

    Example:
        player = SoundDevicePlayer()
        player.on_finished = lambda: print("done")
        player.load(Path("take.wav"))
        player.play()
    """

    def __init__(
        self,
        device_index: int | None = None,
        device_name: str = "default",
        block_size: int = 1024,
    ) -> None:
        self.on_error: ErrorHandler | None = None
        self.on_finished: FinishedHandler | None = None
        self._device_index = device_index
        self._device_name = device_name
        self._block_size = block_size
        self._data: NDArray[np.float32] | None = None
        self._samplerate = 0
        self._frame = 0
        self._stream: sd.OutputStream | None = None
        self._lock = threading.Lock()
        self._reached_end = False
        self._stopping = False

    @property
    def is_loaded(self) -> bool:
        return self._data is not None

    @property
    def is_playing(self) -> bool:
        return self._stream is not None and self._stream.active

    @property
    def position(self) -> float:
        if not self._samplerate:
            return 0.0
        return self._frame / self._samplerate

    @property
    def duration(self) -> float:
        if self._data is None or not self._samplerate:
            return 0.0
        return len(self._data) / self._samplerate

    def load(self, path: Path) -> None:
        """Decode ``path`` and rewind to the start.

        Raises:
            AudioPlaybackError: If the file cannot be decoded.
        """
        self.stop()
        try:
            data, samplerate = sf.read(path, dtype="float32", always_2d=True)
        except (sf.SoundFileError, RuntimeError, OSError) as e:
            raise AudioPlaybackError(f"Failed to decode {path}: {e}") from e

        with self._lock:
            self._data = data
            self._samplerate = samplerate
            self._frame = 0
        logger.info("Loaded %s (%.2f seconds)", path, self.duration)

    def _audio_callback(
        self,
        outdata: NDArray[np.float32],
        frames: int,
        time_info: Any,
        status: sd.CallbackFlags,
    ) -> None:
        """Fill the output buffer from the decoded file.

        Runs on the PortAudio thread; stops the stream at the end of the data.
        """
        if status.output_underflow:
            logger.warning("Output underflow on %s", self._device_name)

        with self._lock:
            if self._data is None:
                outdata.fill(0)
                raise sd.CallbackStop
            chunk = self._data[self._frame : self._frame + frames]
            count = len(chunk)
            outdata[:count] = chunk
            outdata[count:] = 0
            self._frame += count
            if self._frame >= len(self._data):
                self._reached_end = True
                raise sd.CallbackStop

    def _stream_finished(self) -> None:
        """Invoked by sounddevice once the stream has become inactive."""
        if self._reached_end:
            self._reached_end = False
            with self._lock:
                self._frame = 0
            logger.info("Playback finished on %s", self._device_name)
            if self.on_finished is not None:
                self.on_finished()
        elif not self._stopping:
            logger.error("Playback on %s stopped unexpectedly", self._device_name)
            if self.on_error is not None:
                self.on_error(f"Playback on {self._device_name} stopped unexpectedly")

    def play(self) -> None:
        """Start or resume playback.

        Raises:
            AudioPlaybackError: If nothing is loaded or the stream cannot be opened.
        """
        if self._data is None:
            raise AudioPlaybackError("No audio loaded for playback")
        if self.is_playing:
            return

        self._close_stream()
        if self._frame >= len(self._data):
            self._frame = 0

        try:
            self._stream = sd.OutputStream(
                device=self._device_index,
                samplerate=self._samplerate,
                channels=self._data.shape[1],
                dtype="float32",
                blocksize=self._block_size,
                callback=self._audio_callback,
                finished_callback=self._stream_finished,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            raise AudioPlaybackError(f"Failed to start playback on {self._device_name}: {e}") from e

        logger.info("Playing from %.2f seconds on %s", self.position, self._device_name)

    def pause(self) -> None:
        """Pause playback, keeping the position."""
        self._close_stream()

    def stop(self) -> None:
        """Stop playback and rewind."""
        self._close_stream()
        with self._lock:
            self._frame = 0

    def _close_stream(self) -> None:
        if self._stream is None:
            return

        self._stopping = True
        try:
            self._stream.stop()
            self._stream.close()
        except sd.PortAudioError as e:
            logger.error("Error stopping stream %s: %s", self._device_name, e)
        finally:
            self._stream = None
            self._stopping = False
