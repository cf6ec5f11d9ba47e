"""Artifact storage."""

from take_recorder.storage.clip_store import ClipStore

__all__ = ["ClipStore"]
