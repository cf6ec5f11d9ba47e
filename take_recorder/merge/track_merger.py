"""Asynchronous concatenation of two audio artifacts.

TrackMerger appends one take to the accumulated recording and re-encodes the
result into the session's output format on a worker thread. The caller gets
an ExportOperation handle immediately and a MergeOutcome through a completion
callback once the export finishes, fails or is cancelled.
"""

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

import numpy as np
import soundfile as sf
from numpy.typing import NDArray

from take_recorder.config import OutputFormat
from take_recorder.exceptions import MergeError, MergeErrorKind
from take_recorder.storage.clip_store import ClipStore

logger = logging.getLogger(__name__)


class ExportStatus(Enum):
    """Lifecycle of an export operation."""

    WAITING = "waiting"
    EXPORTING = "exporting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class MergeRequest:
    """One merge: append ``source`` after ``destination``.

    Attributes:
        source: The take just captured.
        destination: The accumulated recording so far.
        output_format: Format of the exported file.
        delete_source_on_success: Remove ``source`` once the export is committed.
        output_path: Where to write the result (None to overwrite ``destination``).
    """

    source: Path
    destination: Path
    output_format: OutputFormat
    delete_source_on_success: bool = True
    output_path: Path | None = None

    @property
    def target(self) -> Path:
        """Path the merged audio is written to."""
        return self.output_path if self.output_path is not None else self.destination


@dataclass(frozen=True)
class MergeOutcome:
    """Result of a merge: either ``path`` or ``error`` is set."""

    request: MergeRequest
    path: Path | None = None
    error: MergeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ExportOperation:
    """Handle on an export running in the background.

    ``cancel()`` is best effort: it succeeds only if the export has not been
    committed yet.
    """

    def __init__(self, request: MergeRequest) -> None:
        self.request = request
        self._status = ExportStatus.WAITING
        self._error: MergeError | None = None
        self._cancel_requested = False
        self._lock = threading.Lock()
        self._done = threading.Event()

    @property
    def status(self) -> ExportStatus:
        return self._status

    @property
    def error(self) -> MergeError | None:
        return self._error

    @property
    def output_path(self) -> Path:
        return self.request.target

    @property
    def is_done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> bool:
        """Request cancellation.

        Returns:
            True if the export will not be committed.
        """
        with self._lock:
            if self._status in (ExportStatus.COMPLETED, ExportStatus.FAILED):
                return False
            self._cancel_requested = True
            return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the export finishes. Returns False on timeout."""
        return self._done.wait(timeout)

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._cancel_requested

    def _finish(self, status: ExportStatus, error: MergeError | None = None) -> None:
        self._status = status
        self._error = error
        self._done.set()


class TrackMerger:
    """Concatenates two audio files into one.

    The destination's audio comes first and the source is appended after it
    with no gap, so repeated merges keep takes in recording order. When the
    source's sample rate or channel count differs from the destination's it
    is converted to match.

    Args:
        clip_store: Store used to delete merged sources (None to unlink directly).
        block_size: Frames copied per block; cancellation is checked between blocks.

    Example:
        merger = TrackMerger(store)
        request = MergeRequest(take, output, OutputFormat.WAV)
        operation = merger.merge(request, on_complete=handle_outcome)
        operation.wait()
    """

    def __init__(self, clip_store: ClipStore | None = None, block_size: int = 65536) -> None:
        self._clip_store = clip_store
        self._block_size = block_size

    def merge(
        self,
        request: MergeRequest,
        on_complete: Callable[[MergeOutcome], None],
    ) -> ExportOperation:
        """Start merging ``request.source`` into ``request.destination``.

        Args:
            request: What to merge and where to write it.
            on_complete: Called exactly once, from the worker thread, with the outcome.

        Returns:
            Handle on the running export.

        Raises:
            MergeError: ``URLS_NOT_UNIQUE`` if source and destination are the same file.
        """
        if _same_file(request.source, request.destination):
            raise MergeError(MergeErrorKind.URLS_NOT_UNIQUE)
        if request.output_path is not None and _same_file(request.output_path, request.source):
            raise MergeError(MergeErrorKind.INVALID_OPTIONS)

        operation = ExportOperation(request)
        worker = threading.Thread(
            target=self._export,
            args=(operation, on_complete),
            name=f"export-{request.target.name}",
            daemon=True,
        )
        worker.start()
        logger.info("Merging %s into %s", request.source.name, request.destination.name)
        return operation

    def _export(
        self,
        operation: ExportOperation,
        on_complete: Callable[[MergeOutcome], None],
    ) -> None:
        """Worker thread body. Always reports an outcome before finishing."""
        request = operation.request
        target = request.target
        partial = target.with_name(f"{target.stem}.partial{target.suffix}")
        operation._status = ExportStatus.EXPORTING

        try:
            self._write_composition(operation, partial)
            with operation._lock:
                if operation._cancel_requested:
                    raise MergeError(MergeErrorKind.CANCELLED)
                self._delete_existing_file(target)
                os.replace(partial, target)
                operation._status = ExportStatus.COMPLETED
        except MergeError as e:
            error = e
        except Exception as e:
            error = MergeError(MergeErrorKind.FAILED, e)
        else:
            if request.delete_source_on_success:
                self._delete_source(request.source)
            logger.info("Merged %s into %s", request.source.name, target.name)
            try:
                on_complete(MergeOutcome(request, path=target))
            finally:
                operation._finish(ExportStatus.COMPLETED)
            return

        status = self._discard_partial(operation, partial, error)
        try:
            on_complete(MergeOutcome(request, error=error))
        finally:
            operation._finish(status, error)

    def _write_composition(self, operation: ExportOperation, partial: Path) -> None:
        """Write destination followed by source into ``partial``."""
        request = operation.request
        fmt = request.output_format

        with _open_track(request.destination, MergeErrorKind.DESTINATION_TRACK) as master:
            with _open_track(request.source, MergeErrorKind.MERGING_TRACK) as take:
                samplerate = master.samplerate
                channels = master.channels

                with _create_export(partial, fmt, samplerate, channels) as out:
                    for block in master.blocks(
                        blocksize=self._block_size, dtype="float32", always_2d=True
                    ):
                        _raise_if_cancelled(operation)
                        out.write(block)

                    if take.samplerate == samplerate:
                        for block in take.blocks(
                            blocksize=self._block_size, dtype="float32", always_2d=True
                        ):
                            _raise_if_cancelled(operation)
                            out.write(_match_channels(block, channels))
                    else:
                        logger.debug(
                            "Resampling %s from %d Hz to %d Hz",
                            request.source.name,
                            take.samplerate,
                            samplerate,
                        )
                        data = take.read(dtype="float32", always_2d=True)
                        data = _resample(data, take.samplerate, samplerate)
                        _raise_if_cancelled(operation)
                        out.write(_match_channels(data, channels))

    def _discard_partial(
        self, operation: ExportOperation, partial: Path, error: MergeError
    ) -> ExportStatus:
        self._delete_existing_file(partial)
        if error.kind is MergeErrorKind.CANCELLED:
            logger.info("Export of %s cancelled", operation.request.target.name)
            return ExportStatus.CANCELLED
        logger.error("Export of %s failed: %s", operation.request.target.name, error)
        return ExportStatus.FAILED

    def _delete_source(self, path: Path) -> None:
        if self._clip_store is not None:
            self._clip_store.delete(path)
        else:
            self._delete_existing_file(path)

    def _delete_existing_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete %s: %s", path, e)


def _same_file(a: Path, b: Path) -> bool:
    return Path(a).resolve() == Path(b).resolve()


def _raise_if_cancelled(operation: ExportOperation) -> None:
    if operation.cancel_requested:
        raise MergeError(MergeErrorKind.CANCELLED)


def _open_track(path: Path, kind: MergeErrorKind) -> sf.SoundFile:
    """Open an input for reading, mapping failures to a track error."""
    try:
        return sf.SoundFile(path)
    except (sf.SoundFileError, RuntimeError, OSError) as e:
        raise MergeError(kind, e) from e


def _create_export(
    path: Path, fmt: OutputFormat, samplerate: int, channels: int
) -> sf.SoundFile:
    """Open the export target, mapping failures to an export-session error."""
    if not sf.check_format(fmt.container, fmt.subtype):
        raise MergeError(
            MergeErrorKind.EXPORT_SESSION,
            ValueError(f"{fmt.container}/{fmt.subtype} is not writable by libsndfile"),
        )
    try:
        return sf.SoundFile(
            path,
            mode="w",
            samplerate=samplerate,
            channels=channels,
            format=fmt.container,
            subtype=fmt.subtype,
        )
    except (sf.SoundFileError, RuntimeError, OSError) as e:
        raise MergeError(MergeErrorKind.EXPORT_SESSION, e) from e


def _match_channels(data: NDArray[np.float32], channels: int) -> NDArray[np.float32]:
    """Convert ``data`` (frames, n) to (frames, channels)."""
    if data.shape[1] == channels:
        return data
    mono = data.mean(axis=1, keepdims=True).astype(np.float32)
    if channels == 1:
        return mono
    return np.repeat(mono, channels, axis=1)


def _resample(
    data: NDArray[np.float32], orig_sr: int, target_sr: int
) -> NDArray[np.float32]:
    """Resample (frames, channels) audio to ``target_sr``."""
    from scipy import signal as scipy_signal  # type: ignore[import-untyped]

    num_samples = int(len(data) * target_sr / orig_sr)
    if num_samples == 0:
        return np.zeros((0, data.shape[1]), dtype=np.float32)
    resampled: NDArray[np.float32] = scipy_signal.resample(data, num_samples, axis=0)
    return resampled.astype(np.float32)
