"""Output port override through PulseAudio/PipeWire.

Switching to the speaker selects a speaker port on the default sink;
switching back restores whichever port was active before the override.
"""

import logging

import pulsectl

from take_recorder.config import AudioPort
from take_recorder.exceptions import RoutingError

logger = logging.getLogger(__name__)


class PulseOutputRouter:
    """Applies output port overrides on the default PulseAudio sink.

    Args:
        client_name: Client name shown to the PulseAudio server.
    """

    def __init__(self, client_name: str = "take-recorder-router") -> None:
        self._client_name = client_name
        self._original_port: tuple[str, str] | None = None

    def apply(self, port: AudioPort) -> None:
        """Route playback to ``port``.

        Raises:
            RoutingError: If the server is unreachable or no speaker port exists.
        """
        try:
            with pulsectl.Pulse(self._client_name) as pulse:
                if port is AudioPort.SPEAKER:
                    self._route_to_speaker(pulse)
                else:
                    self._restore(pulse)
        except pulsectl.PulseError as e:
            raise RoutingError(f"Failed to route output to {port.value}: {e}") from e

    def _route_to_speaker(self, pulse: pulsectl.Pulse) -> None:
        sink = pulse.get_sink_by_name(pulse.server_info().default_sink_name)
        speakers = [
            p
            for p in sink.port_list
            if "speaker" in f"{p.name} {p.description or ''}".lower()
            and p.available != "no"
        ]
        if not speakers:
            raise RoutingError(f"No speaker port on {sink.description or sink.name}")

        target = speakers[0]
        active = sink.port_active
        if active is not None and active.name == target.name:
            return
        if self._original_port is None and active is not None:
            self._original_port = (sink.name, active.name)

        pulse.port_set(sink, target)
        logger.info("Routed output to %s on %s", target.name, sink.name)

    def _restore(self, pulse: pulsectl.Pulse) -> None:
        if self._original_port is None:
            return

        sink_name, port_name = self._original_port
        sink = pulse.get_sink_by_name(sink_name)
        for p in sink.port_list:
            if p.name == port_name:
                pulse.port_set(sink, p)
                logger.info("Restored output port %s on %s", port_name, sink_name)
                break
        self._original_port = None
