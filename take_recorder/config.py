"""Configuration dataclasses for multi-take recording sessions."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class OutputFormat(Enum):
    """Container/codec types a session can record and export.

    Each member carries the file extension and the soundfile ``format`` and
    ``subtype`` used when writing it.
    """

    WAV = (".wav", "WAV", "PCM_16")
    AIFF = (".aiff", "AIFF", "PCM_16")
    AIFC = (".aifc", "AIFF", "FLOAT")
    FLAC = (".flac", "FLAC", "PCM_16")
    OGG = (".ogg", "OGG", "VORBIS")
    MP3 = (".mp3", "MP3", "MPEG_LAYER_III")
    CAF = (".caf", "CAF", "PCM_16")

    def __init__(self, extension: str, container: str, subtype: str) -> None:
        self.extension = extension
        self.container = container
        self.subtype = subtype

    @classmethod
    def from_name(cls, name: str) -> "OutputFormat":
        """Look up a format by member name or extension (``"flac"``, ``".flac"``)."""
        key = name.strip().lower().lstrip(".")
        for fmt in cls:
            if fmt.name.lower() == key or fmt.extension[1:] == key:
                return fmt
        raise ValueError(f"Unknown output format: {name!r}")


class AudioPort(Enum):
    """Physical output route used for playback."""

    DEFAULT = "default"
    SPEAKER = "speaker"


@dataclass(frozen=True)
class AudioConfig:
    """Configuration for audio capture parameters.

    Attributes:
        sample_rate: Sample rate in Hz (default: 16000).
        channels: Number of audio channels (default: 2 for stereo).
        block_size: Number of frames per audio block (default: 1024).
        dtype: NumPy dtype string for audio samples.
    """

    sample_rate: int = 16000
    channels: int = 2
    block_size: int = 1024
    dtype: str = "float32"

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.channels <= 0:
            raise ValueError(f"channels must be positive, got {self.channels}")
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")


@dataclass(frozen=True)
class SessionConfig:
    """Configuration for a recording session.

    Attributes:
        output_format: Format of every take and of the merged output.
        allow_port_selection: Whether the host may change the output port.
        default_port: Output port applied when the session starts.
        storage_dir: Directory holding takes and the merged output.
        audio: Capture parameters.
        tick_interval: Seconds between elapsed-time ticks.
        input_device: Microphone name or description (None for default).
        output_device: Playback device name or description (None for default).
    """

    output_format: OutputFormat = OutputFormat.WAV
    allow_port_selection: bool = True
    default_port: AudioPort = AudioPort.DEFAULT
    storage_dir: Path = Path("recordings")
    audio: AudioConfig = field(default_factory=AudioConfig)
    tick_interval: float = 0.01
    input_device: str | None = None
    output_device: str | None = None

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")
        if isinstance(self.storage_dir, str):
            object.__setattr__(self, "storage_dir", Path(self.storage_dir))
