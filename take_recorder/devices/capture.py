"""Microphone capture into an audio file using sounddevice and soundfile.

The PortAudio callback only queues blocks; a writer thread encodes them into
the target file so that slow disks never stall the audio thread.
"""

import logging
import threading
from pathlib import Path
from queue import Full, Queue
from typing import Any

import numpy as np
import sounddevice as sd
import soundfile as sf
from numpy.typing import NDArray

from take_recorder.config import AudioConfig, OutputFormat
from take_recorder.core.protocols import ErrorHandler
from take_recorder.exceptions import AudioCaptureError

logger = logging.getLogger(__name__)


class SoundDeviceRecorder:
    """Records an input device into a file, one take at a time.

    Args:
        config: Audio configuration (sample rate, channels, block size).
        output_format: Container/codec the take is encoded into.
        device_index: Sounddevice input index (None for the system default).
        device_name: Human-readable device name for logging.
        buffer_size: Maximum number of audio blocks queued for the writer.

    Example:
        recorder = SoundDeviceRecorder(AudioConfig(), OutputFormat.WAV)
        recorder.on_error = print
        recorder.start_recording(Path("take.wav"))
        ...
        recorder.stop_recording()
    """

    def __init__(
        self,
        config: AudioConfig,
        output_format: OutputFormat,
        device_index: int | None = None,
        device_name: str = "default",
        buffer_size: int = 100,
    ) -> None:
        self.on_error: ErrorHandler | None = None
        self._config = config
        self._format = output_format
        self._device_index = device_index
        self._device_name = device_name
        self._buffer_size = buffer_size
        self._queue: Queue[NDArray[np.float32] | None] = Queue(maxsize=buffer_size)
        self._stream: sd.InputStream | None = None
        self._file: sf.SoundFile | None = None
        self._writer_thread: threading.Thread | None = None
        self._path: Path | None = None
        self._frames_written = 0
        self._overflow_count = 0
        self._failed = False

    @property
    def is_recording(self) -> bool:
        return self._stream is not None and self._stream.active

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def duration(self) -> float:
        """Duration of the current take in seconds."""
        return self._frames_written / self._config.sample_rate

    def _audio_callback(
        self,
        indata: NDArray[np.float32],
        frames: int,
        time_info: Any,
        status: sd.CallbackFlags,
    ) -> None:
        """Queue a copy of each captured block for the writer thread.

        Runs on the PortAudio thread, so it never touches the file.
        """
        if status.input_overflow:
            logger.warning("Input overflow on %s", self._device_name)

        try:
            self._queue.put_nowait(indata.copy())
        except Full:
            self._overflow_count += 1
            if self._overflow_count % 10 == 1:
                logger.warning(
                    "Buffer overflow on %s (count: %d)", self._device_name, self._overflow_count
                )

    def start_recording(self, path: Path) -> None:
        """Start recording into ``path``.

        Raises:
            AudioCaptureError: If the file or the input stream cannot be opened.
        """
        if self._stream is not None:
            logger.warning("Recorder on %s already running, restarting", self._device_name)
            self.stop_recording()

        path.unlink(missing_ok=True)
        try:
            self._file = sf.SoundFile(
                path,
                mode="w",
                samplerate=self._config.sample_rate,
                channels=self._config.channels,
                format=self._format.container,
                subtype=self._format.subtype,
            )
        except (sf.SoundFileError, RuntimeError, OSError) as e:
            raise AudioCaptureError(f"Failed to open {path}: {e}") from e

        self._path = path
        self._frames_written = 0
        self._overflow_count = 0
        self._failed = False
        self._queue = Queue(maxsize=self._buffer_size)
        self._writer_thread = threading.Thread(
            target=self._writer_loop, name=f"capture-{path.name}", daemon=True
        )
        self._writer_thread.start()

        try:
            self._stream = sd.InputStream(
                device=self._device_index,
                samplerate=self._config.sample_rate,
                channels=self._config.channels,
                dtype=self._config.dtype,
                blocksize=self._config.block_size,
                callback=self._audio_callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            self._close_writer()
            raise AudioCaptureError(f"Failed to start capture from {self._device_name}: {e}") from e

        logger.info("Recording from %s into %s", self._device_name, path)

    def stop_recording(self) -> None:
        """Stop capturing and finalize the file."""
        if self._stream is None:
            return

        try:
            self._stream.stop()
            self._stream.close()
        except sd.PortAudioError as e:
            logger.error("Error stopping stream %s: %s", self._device_name, e)
        finally:
            self._stream = None

        self._close_writer()

    def discard_current_recording(self) -> None:
        """Stop capturing and delete the take."""
        self.stop_recording()
        if self._path is not None:
            self._path.unlink(missing_ok=True)
            logger.info("Discarded %s", self._path)

    def _writer_loop(self) -> None:
        """Writer thread main loop: drain queued blocks into the file."""
        while True:
            block = self._queue.get()
            if block is None:
                break
            if self._file is None or self._failed:
                continue
            try:
                self._file.write(block)
                self._frames_written += block.shape[0]
            except (sf.SoundFileError, RuntimeError) as e:
                self._failed = True
                logger.error("Encoding failed for %s: %s", self._path, e)
                if self.on_error is not None:
                    self.on_error(f"Failed to encode audio into {self._path}: {e}")

    def _close_writer(self) -> None:
        """Flush the queue and close the file, ensuring it's finalized."""
        if self._writer_thread is not None:
            try:
                self._queue.put(None, timeout=5.0)
            except Full:
                logger.warning("Failed to signal writer thread (queue full)")
            self._writer_thread.join(timeout=5.0)
            self._writer_thread = None

        if self._file is not None:
            try:
                self._file.close()
                logger.info(
                    "Closed %s (%.2f seconds, %d frames)",
                    self._path,
                    self.duration,
                    self._frames_written,
                )
            except (sf.SoundFileError, RuntimeError) as e:
                logger.error("Error closing %s: %s", self._path, e)
            finally:
                self._file = None
