"""Tests for artifact allocation and cleanup."""

import pytest

from take_recorder.config import OutputFormat
from take_recorder.storage.clip_store import ClipStore


@pytest.fixture
def store(tmp_path):
    """Create a FLAC clip store in a directory that does not exist yet."""
    return ClipStore(tmp_path / "clips", OutputFormat.FLAC)


class TestNewClip:
    """Verify ClipStore.new_clip() hands out fresh, tracked paths."""

    def test_uses_format_extension(self, store):
        path = store.new_clip()
        assert path.suffix == ".flac"
        assert path.parent == store.directory

    def test_creates_directory_not_file(self, store):
        path = store.new_clip()
        assert store.directory.is_dir()
        assert not path.exists()

    def test_paths_are_unique(self, store):
        paths = {store.new_clip() for _ in range(50)}
        assert len(paths) == 50
        assert store.tracked == frozenset(paths)


class TestDelete:
    """Verify deletion is idempotent and untracks paths."""

    def test_delete_twice(self, store):
        """Deleting an artifact that is already gone is not an error."""
        path = store.new_clip()
        path.write_bytes(b"audio")

        store.delete(path)
        store.delete(path)

        assert not path.exists()
        assert path not in store.tracked

    def test_delete_untracked_path(self, store, tmp_path):
        other = tmp_path / "other.wav"
        other.write_bytes(b"audio")
        store.delete(other)
        assert not other.exists()

    def test_delete_failure_is_logged(self, store, caplog):
        path = store.new_clip()
        path.mkdir()

        store.delete(path)

        assert path.exists()
        assert "Could not delete" in caplog.text


class TestDiscardAll:
    def test_discards_every_tracked_file(self, store):
        paths = [store.new_clip() for _ in range(3)]
        for path in paths[:2]:
            path.write_bytes(b"audio")

        store.discard_all()

        assert not any(path.exists() for path in paths)
        assert store.tracked == frozenset()

    def test_released_path_survives(self, store):
        """A released artifact belongs to the caller and is not discarded."""
        kept = store.new_clip()
        kept.write_bytes(b"final")
        dropped = store.new_clip()
        dropped.write_bytes(b"take")

        store.release(kept)
        store.discard_all()

        assert kept.exists()
        assert not dropped.exists()
