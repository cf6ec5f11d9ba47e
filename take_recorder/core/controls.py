"""Which user controls are available in each session state."""

from dataclasses import dataclass

from take_recorder.core.states import Event, SessionState


@dataclass(frozen=True)
class Controls:
    """Enabled/selected flags for the host's controls.

    Record and play toggle each other: they are never both selected, and
    record is disabled while playing.
    """

    record_enabled: bool
    record_selected: bool
    play_enabled: bool
    play_selected: bool
    save_enabled: bool
    cancel_enabled: bool
    port_visible: bool

    @classmethod
    def for_state(cls, state: SessionState, allow_port_selection: bool = True) -> "Controls":
        return cls(
            record_enabled=state
            in (SessionState.EMPTY, SessionState.RECORDING, SessionState.PAUSED),
            record_selected=state is SessionState.RECORDING,
            play_enabled=state in (SessionState.PAUSED, SessionState.PLAYING),
            play_selected=state is SessionState.PLAYING,
            save_enabled=state is SessionState.PAUSED,
            cancel_enabled=not state.is_terminal,
            port_visible=allow_port_selection,
        )

    def allows(self, event: Event) -> bool:
        """Whether the control that sends ``event`` is enabled."""
        if event is Event.RECORD:
            return self.record_enabled
        if event is Event.TOGGLE_PLAYBACK:
            return self.play_enabled
        if event is Event.SAVE:
            return self.save_enabled
        if event is Event.CANCEL:
            return self.cancel_enabled
        return False
