"""Multi-take audio recording with pause/resume, preview and merged export."""

__version__ = "0.1.0"
