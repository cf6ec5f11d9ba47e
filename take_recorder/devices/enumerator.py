"""Device enumeration using sounddevice (PortAudio)."""

from dataclasses import dataclass

import sounddevice as sd

from take_recorder.exceptions import DeviceNotFoundError, NoDevicesAvailableError

# Generic/virtual PortAudio entries that are not real devices
_VIRTUAL_DEVICES = ("sysdefault", "pipewire", "default", "spdif")


@dataclass(frozen=True)
class AudioDevice:
    """Represents an audio device.

    Attributes:
        index: Sounddevice device index.
        name: Device name as seen by sounddevice.
        is_default: Whether this is the default device of its kind.
        channels: Number of input or output channels.
    """

    index: int
    name: str
    is_default: bool = False
    channels: int = 2

    def __str__(self) -> str:
        suffix = " [default]" if self.is_default else ""
        return f"{self.name}{suffix}"


class DeviceEnumerator:
    """Enumerates and selects input and output devices.

    Example:
        enumerator = DeviceEnumerator()
        mic = enumerator.find_microphone("USB")
        speakers = enumerator.find_output("HDMI")
    """

    def _get_default_device_index(self, kind: str) -> int | None:
        """Get the default device index for input or output."""
        try:
            default = sd.query_devices(kind=kind)
            if isinstance(default, dict):
                return default.get("index")
        except sd.PortAudioError:
            pass
        return None

    def _list(self, kind: str) -> list[AudioDevice]:
        channel_key = f"max_{kind}_channels"
        default_idx = self._get_default_device_index(kind)
        devices = sd.query_devices()
        if isinstance(devices, dict):
            devices = [devices]

        found = []
        for i, d in enumerate(devices):
            if d.get(channel_key, 0) <= 0 or d["name"] in _VIRTUAL_DEVICES:
                continue
            found.append(
                AudioDevice(
                    index=i,
                    name=d["name"],
                    is_default=(i == default_idx),
                    channels=d.get(channel_key, 2),
                )
            )
        return found

    def list_microphones(self) -> list[AudioDevice]:
        """List available input devices.

        Raises:
            NoDevicesAvailableError: If no microphones are available.
        """
        devices = self._list("input")
        if not devices:
            raise NoDevicesAvailableError("microphone")
        return devices

    def list_outputs(self) -> list[AudioDevice]:
        """List available output devices.

        Raises:
            NoDevicesAvailableError: If no outputs are available.
        """
        devices = self._list("output")
        if not devices:
            raise NoDevicesAvailableError("output")
        return devices

    def find_microphone(self, name: str) -> AudioDevice:
        """Find a microphone by name substring.

        Raises:
            DeviceNotFoundError: If no matching microphone is found.
        """
        return self._find(self.list_microphones(), name, "microphone")

    def find_output(self, name: str) -> AudioDevice:
        """Find an output device by name substring.

        Raises:
            DeviceNotFoundError: If no matching output is found.
        """
        return self._find(self.list_outputs(), name, "output")

    def _find(self, devices: list[AudioDevice], name: str, device_type: str) -> AudioDevice:
        search = name.lower()
        for device in devices:
            if search in device.name.lower():
                return device
        raise DeviceNotFoundError(name, device_type)
