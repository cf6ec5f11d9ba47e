"""Command-line interface for the take recorder.

This module provides the main entry point, argument parsing and the
interactive loop that drives a RecordingSession from the keyboard.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from queue import Empty, Queue
from types import FrameType
from typing import Any, TextIO

from take_recorder import __version__
from take_recorder.config import AudioConfig, AudioPort, OutputFormat, SessionConfig
from take_recorder.core.session import RecordingSession
from take_recorder.core.states import ElapsedKind, Event, SessionState
from take_recorder.exceptions import TakeRecorderError

logger = logging.getLogger(__name__)

HELP = "[r] record/pause  [p] play/pause  [o] output port  [s] save  [c] cancel"

COMMANDS = {
    "r": Event.RECORD,
    "p": Event.TOGGLE_PLAYBACK,
    "s": Event.SAVE,
    "c": Event.CANCEL,
}


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity setting."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def format_elapsed(ticks: int, tick_interval: float = 0.01) -> str:
    """Format an elapsed tick count as ``MM:SS.cc``."""
    centiseconds = int(round(ticks * tick_interval * 100))
    minutes, rest = divmod(centiseconds, 6000)
    seconds, hundredths = divmod(rest, 100)
    return f"{minutes:02d}:{seconds:02d}.{hundredths:02d}"


def list_devices() -> None:
    """List all available audio devices."""
    from take_recorder.devices.enumerator import DeviceEnumerator

    enumerator = DeviceEnumerator()
    print("Available Audio Devices")
    print("=" * 50)

    print("\nMicrophones:")
    print("-" * 30)
    try:
        for mic in enumerator.list_microphones():
            print(f"  {mic}")
            print(f"    Index: {mic.index}, Channels: {mic.channels}")
    except TakeRecorderError as e:
        print(f"  Error: {e}")

    print("\nOutputs:")
    print("-" * 30)
    try:
        for output in enumerator.list_outputs():
            print(f"  {output}")
            print(f"    Index: {output.index}, Channels: {output.channels}")
    except TakeRecorderError as e:
        print(f"  Error: {e}")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="take-recorder",
        description="Record audio in several takes and save them as one file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Keys (followed by Enter):
  r  start / pause / resume recording
  p  play / pause the recording so far
  o  toggle output port (default / speaker)
  s  save and exit
  c  cancel, delete everything and exit

Examples:
  # Record into ./recordings as WAV
  take-recorder

  # FLAC output in a custom directory, played through the speaker
  take-recorder -d ~/takes -f flac --port speaker

  # List available devices
  take-recorder --list-devices
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-d",
        "--directory",
        type=Path,
        default=Path("recordings"),
        help="Directory for takes and the saved recording (default: recordings)",
    )

    parser.add_argument(
        "-f",
        "--format",
        type=str,
        choices=[fmt.name.lower() for fmt in OutputFormat],
        default="wav",
        help="Output format (default: wav)",
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio devices and exit",
    )

    # Device selection
    device_group = parser.add_argument_group("Device Selection")
    device_group.add_argument(
        "--mic",
        type=str,
        default=None,
        metavar="DEVICE",
        help="Microphone device name (default: system default)",
    )
    device_group.add_argument(
        "--output-device",
        type=str,
        default=None,
        metavar="DEVICE",
        help="Playback device name (default: system default)",
    )

    # Output routing
    port_group = parser.add_argument_group("Output Routing")
    port_group.add_argument(
        "--port",
        type=str,
        choices=[port.value for port in AudioPort],
        default=AudioPort.DEFAULT.value,
        help="Initial output port (default: default)",
    )
    port_group.add_argument(
        "--no-port-selection",
        action="store_true",
        help="Do not allow changing the output port",
    )

    # Recording options
    recording_group = parser.add_argument_group("Recording Options")
    recording_group.add_argument(
        "--sample-rate",
        type=int,
        default=16000,
        metavar="HZ",
        help="Sample rate in Hz (default: 16000)",
    )
    recording_group.add_argument(
        "--channels",
        type=int,
        default=2,
        metavar="N",
        help="Number of channels (default: 2)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser


def validate_args(args: argparse.Namespace) -> None:
    """Validate command-line arguments.

    Raises:
        ValueError: If arguments are invalid.
    """
    if args.sample_rate <= 0:
        raise ValueError(f"Sample rate must be positive, got {args.sample_rate}")

    if not 1 <= args.channels <= 8:
        raise ValueError(f"Channels must be 1-8, got {args.channels}")


def build_config(args: argparse.Namespace) -> SessionConfig:
    """Build session configuration from arguments."""
    audio_config = AudioConfig(
        sample_rate=args.sample_rate,
        channels=args.channels,
        block_size=1024,
        dtype="float32",
    )

    return SessionConfig(
        output_format=OutputFormat.from_name(args.format),
        allow_port_selection=not args.no_port_selection,
        default_port=AudioPort(args.port),
        storage_dir=args.directory,
        audio=audio_config,
        input_device=args.mic,
        output_device=args.output_device,
    )


class ConsoleObserver:
    """Prints session notifications to a stream."""

    def __init__(self, tick_interval: float = 0.01, out: TextIO = sys.stdout) -> None:
        self._tick_interval = tick_interval
        self._ticks_per_second = max(1, int(round(1 / tick_interval)))
        self._out = out
        self.saved_path: Path | None = None
        self.cancelled = False

    def state_changed(self, state: SessionState, message: str | None) -> None:
        if state is SessionState.ERROR:
            print(f"Error: {message}", file=self._out)
            print("Press [c] to cancel.", file=self._out)
        else:
            print(f"-- {state.value}", file=self._out)

    def elapsed_changed(self, kind: ElapsedKind, value: int) -> None:
        if value % self._ticks_per_second == 0:
            print(f"   {kind.value} {format_elapsed(value, self._tick_interval)}", file=self._out)

    def port_changed(self, port: AudioPort) -> None:
        print(f"-- output port: {port.value}", file=self._out)

    def did_cancel(self) -> None:
        self.cancelled = True
        print("Recording cancelled.", file=self._out)

    def did_save(self, path: Path) -> None:
        self.saved_path = path
        print(f"Saved recording to {path}", file=self._out)


class InteractiveRecorder:
    """Drives a session from line-based keyboard commands.

    Commands are read from ``stdin`` on a daemon thread; this thread pumps the
    session. SIGINT/SIGTERM cancel the session.

    Args:
        session: Session to drive.
        stdin: Stream commands are read from.
        poll_interval: Seconds to wait for session events per iteration.
    """

    def __init__(
        self,
        session: RecordingSession,
        stdin: TextIO = sys.stdin,
        poll_interval: float = 0.05,
    ) -> None:
        self._session = session
        self._stdin = stdin
        self._poll_interval = poll_interval
        self._commands: Queue[str | None] = Queue()
        self._interrupted = False
        self._eof = False
        self._original_sigint: Any = None
        self._original_sigterm: Any = None

    def _setup_signal_handlers(self) -> None:
        """Install signal handlers that cancel the session."""

        def handler(signum: int, frame: FrameType | None) -> None:
            self._interrupted = True

        self._original_sigint = signal.signal(signal.SIGINT, handler)
        self._original_sigterm = signal.signal(signal.SIGTERM, handler)

    def _restore_signal_handlers(self) -> None:
        """Restore original signal handlers."""
        if self._original_sigint is not None:
            signal.signal(signal.SIGINT, self._original_sigint)
        if self._original_sigterm is not None:
            signal.signal(signal.SIGTERM, self._original_sigterm)

    def _read_commands(self) -> None:
        for line in self._stdin:
            self._commands.put(line.strip().lower())
        self._commands.put(None)

    def handle_command(self, command: str) -> None:
        """Apply one keyboard command to the session."""
        session = self._session
        if not command:
            return

        if command == "o":
            if not session.controls.port_visible:
                print("Output port selection is disabled.")
                return
            port = AudioPort.SPEAKER if session.audio_port is AudioPort.DEFAULT else AudioPort.DEFAULT
            session.set_port(port)
            return

        event = COMMANDS.get(command)
        if event is None:
            print(HELP)
            return
        if not session.controls.allows(event):
            print(f"'{command}' is not available while {session.state.value}")
            return

        actions = {
            Event.RECORD: session.record,
            Event.TOGGLE_PLAYBACK: session.toggle_playback,
            Event.SAVE: session.save,
            Event.CANCEL: session.cancel,
        }
        actions[event]()

    def _drain_commands(self) -> None:
        while True:
            try:
                command = self._commands.get_nowait()
            except Empty:
                return
            if command is None:
                self._eof = True
                return
            self.handle_command(command)
            # Gate the next command on the state this one produced
            self._session.process_pending()
            if self._session.state.is_terminal:
                return

    def run(self, use_signals: bool = True) -> SessionState:
        """Run until the session is saved or cancelled.

        Returns:
            The terminal state reached.
        """
        reader = threading.Thread(target=self._read_commands, name="stdin-reader", daemon=True)
        reader.start()
        if use_signals:
            self._setup_signal_handlers()

        print(HELP)
        cancel_sent = False
        try:
            while not self._session.state.is_terminal:
                self._session.process_pending(timeout=self._poll_interval)
                if self._session.state.is_terminal:
                    break
                self._drain_commands()

                if cancel_sent or self._session.state.is_terminal:
                    continue
                if self._interrupted:
                    logger.info("Interrupted, cancelling recording...")
                    self._session.cancel()
                    cancel_sent = True
                elif self._eof and not self._session.merge_in_flight:
                    self._session.cancel()
                    cancel_sent = True
        finally:
            if use_signals:
                self._restore_signal_handlers()

        return self._session.state


def main() -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    args = parser.parse_args()

    # List devices and exit
    if args.list_devices:
        try:
            list_devices()
            return 0
        except TakeRecorderError as e:
            print(f"Error listing devices: {e}", file=sys.stderr)
            return 1

    setup_logging(args.verbose)

    try:
        validate_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config = build_config(args)
    observer = ConsoleObserver(tick_interval=config.tick_interval)

    try:
        with RecordingSession(config, observers=[observer]) as session:
            InteractiveRecorder(session).run()
        return 0
    except TakeRecorderError as e:
        logger.error("Recording failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
