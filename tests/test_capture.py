"""Tests for sounddevice-based capture with a simulated input stream."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest
import soundfile as sf

try:
    import sounddevice as sd

    from take_recorder.devices import capture
except OSError:
    pytest.skip("PortAudio library is not available", allow_module_level=True)

from take_recorder.config import AudioConfig, OutputFormat
from take_recorder.exceptions import AudioCaptureError
from tests.helpers import read_audio


class FakeInputStream:
    """Stands in for sd.InputStream; blocks are pushed with ``feed``."""

    instances: list["FakeInputStream"] = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.active = False
        self.closed = False
        FakeInputStream.instances.append(self)

    def start(self):
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True

    def feed(self, block):
        flags = SimpleNamespace(input_overflow=False)
        self.kwargs["callback"](block, len(block), None, flags)


@pytest.fixture
def stream_class(monkeypatch):
    FakeInputStream.instances = []
    monkeypatch.setattr(capture.sd, "InputStream", FakeInputStream)
    return FakeInputStream


@pytest.fixture
def recorder():
    """Create a mono 8 kHz WAV recorder."""
    return capture.SoundDeviceRecorder(
        AudioConfig(sample_rate=8000, channels=1, block_size=256), OutputFormat.WAV
    )


def block(frames, value=0.25):
    return np.full((frames, 1), value, dtype=np.float32)


class TestRecording:
    def test_records_blocks_into_file(self, recorder, stream_class, tmp_path):
        path = tmp_path / "take.wav"
        recorder.start_recording(path)
        stream = stream_class.instances[-1]

        assert recorder.is_recording
        assert stream.kwargs["samplerate"] == 8000
        assert stream.kwargs["channels"] == 1

        for _ in range(5):
            stream.feed(block(800))
        recorder.stop_recording()

        assert not recorder.is_recording
        assert stream.closed
        data = read_audio(path)
        assert len(data) == 4000
        np.testing.assert_allclose(data, 0.25, atol=1e-3)
        assert recorder.duration == pytest.approx(0.5)

    def test_encodes_configured_format(self, stream_class, tmp_path):
        recorder = capture.SoundDeviceRecorder(
            AudioConfig(sample_rate=8000, channels=2), OutputFormat.FLAC
        )
        path = tmp_path / "take.flac"
        recorder.start_recording(path)
        stream_class.instances[-1].feed(np.zeros((400, 2), dtype=np.float32))
        recorder.stop_recording()

        info = sf.info(path)
        assert info.format == "FLAC"
        assert info.channels == 2

    def test_restart_replaces_existing_file(self, recorder, stream_class, tmp_path):
        path = tmp_path / "take.wav"
        path.write_bytes(b"stale")

        recorder.start_recording(path)
        stream_class.instances[-1].feed(block(100))
        recorder.stop_recording()

        assert len(read_audio(path)) == 100

    def test_discard_deletes_take(self, recorder, stream_class, tmp_path):
        path = tmp_path / "take.wav"
        recorder.start_recording(path)
        stream_class.instances[-1].feed(block(100))

        recorder.discard_current_recording()

        assert not path.exists()
        assert not recorder.is_recording

    def test_stop_without_start(self, recorder):
        recorder.stop_recording()
        assert not recorder.is_recording


class TestErrors:
    def test_stream_failure(self, recorder, monkeypatch, tmp_path):
        def broken_stream(**kwargs):
            raise sd.PortAudioError("device unavailable")

        monkeypatch.setattr(capture.sd, "InputStream", broken_stream)

        with pytest.raises(AudioCaptureError, match="device unavailable"):
            recorder.start_recording(tmp_path / "take.wav")
        assert not recorder.is_recording

    def test_unwritable_path(self, recorder, stream_class, tmp_path):
        with pytest.raises(AudioCaptureError):
            recorder.start_recording(tmp_path / "missing" / "take.wav")
        assert stream_class.instances == []

    def test_encode_failure_reported(self, recorder, stream_class, tmp_path):
        """Write errors on the writer thread are reported through on_error."""
        errors = []
        recorder.on_error = errors.append
        recorder.start_recording(tmp_path / "take.wav")

        broken = MagicMock(wraps=recorder._file)
        broken.write.side_effect = sf.SoundFileError("disk full")
        recorder._file = broken

        stream_class.instances[-1].feed(block(100))
        stream_class.instances[-1].feed(block(100))
        recorder.stop_recording()

        assert len(errors) == 1
        assert "disk full" in errors[0]
