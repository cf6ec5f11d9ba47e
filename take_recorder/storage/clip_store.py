"""Allocation and cleanup of on-disk audio artifacts.

Every take and the merged output live in one directory and are named with a
random UUID plus the extension of the session's output format.
"""

import logging
import threading
import uuid
from pathlib import Path

from take_recorder.config import OutputFormat

logger = logging.getLogger(__name__)


class ClipStore:
    """Creates and deletes temporary audio artifacts.

    Tracks every path it hands out so that a cancelled session can discard
    all of its files at once. Deletion is idempotent.

    Args:
        directory: Directory in which artifacts are created.
        output_format: Format whose extension new artifacts receive.

    Example:
        store = ClipStore(Path("recordings"), OutputFormat.WAV)
        take = store.new_clip()
        ...
        store.delete(take)
        store.delete(take)  # no error
    """

    def __init__(self, directory: Path, output_format: OutputFormat) -> None:
        self._directory = directory
        self._output_format = output_format
        self._tracked: set[Path] = set()
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        """Directory in which artifacts are created."""
        return self._directory

    @property
    def tracked(self) -> frozenset[Path]:
        """Paths handed out and not yet deleted or released."""
        with self._lock:
            return frozenset(self._tracked)

    def new_clip(self) -> Path:
        """Allocate a fresh, unique artifact path.

        The file itself is not created; the directory is.
        """
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._directory / f"{uuid.uuid4().hex}{self._output_format.extension}"
        with self._lock:
            self._tracked.add(path)
        logger.debug("Allocated clip %s", path)
        return path

    def delete(self, path: Path) -> None:
        """Delete an artifact. Missing files are not an error."""
        with self._lock:
            self._tracked.discard(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete %s: %s", path, e)
            return
        logger.debug("Deleted clip %s", path)

    def release(self, path: Path) -> None:
        """Stop tracking a path that now belongs to a caller."""
        with self._lock:
            self._tracked.discard(path)

    def discard_all(self) -> None:
        """Delete every tracked artifact."""
        for path in sorted(self.tracked):
            self.delete(path)
