"""
Quaver CLI entry point.

One invocation performs one action: it either starts the background daemon
(``--play``) or sends a single control command to the running one.
"""

import argparse
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from quaver import __version__
from quaver.audio import AudioEngineError, format_device_list
from quaver.config import DEFAULT_CONFIG_PATH, Config, ConfigError, load_config
from quaver.control import Command, ControlClient
from quaver.daemon import InstanceLock, ProcessSupervisor
from quaver.errors import AlreadyRunningError, ConnectionFailedError, ForkFailedError, QuaverError
from quaver.playback import TrackMetadata

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_USAGE_ERROR = 2
EXIT_CONNECTION_ERROR = 3
EXIT_COMMAND_ERROR = 4

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 5

# Only the first action present on the command line is performed
ACTION_PRECEDENCE = (
    "pause",
    "stop",
    "next",
    "rew",
    "mute",
    "turn_up",
    "turn_down",
    "vol",
    "info",
    "list",
    "save",
    "devices",
    "play",
    "queue",
)

CONTROL_COMMANDS = {
    "pause": Command.PAUSE,
    "stop": Command.STOP,
    "next": Command.NEXT,
    "rew": Command.REWIND,
    "mute": Command.MUTE,
    "turn_up": Command.TURN_UP,
    "turn_down": Command.TURN_DOWN,
    "vol": Command.SET_VOL,
    "info": Command.TRACK_INFO,
    "list": Command.PLAYLIST_INFO,
    "save": Command.SAVE_PLAYLIST,
}


def setup_logging(level: str = "debug", log_file: Optional[str] = None) -> None:
    """
    Configure root logging.

    Logs go to a rotating file when ``log_file`` is set, since the daemon has
    no terminal; otherwise to stdout.
    """
    log_level = getattr(logging, level.upper(), logging.DEBUG)
    handler: logging.Handler = logging.StreamHandler(sys.stdout)

    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
            )
        except OSError as e:
            handler = logging.StreamHandler(sys.stderr)
            print(f"quaver: unable to open log file {path}: {e}", file=sys.stderr)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[handler],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="quaver",
        description="Background audio player controlled from the command line",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  quaver --play ~/Music/track.flac
  quaver --queue ~/Music/album.m3u
  quaver --next
  quaver --vol 18
  quaver --save --path ~/Playlists

Environment Variables:
  QUAVER_LOG_LEVEL, QUAVER_LOG_FILE, QUAVER_SAMPLE_RATE, QUAVER_PLAYLIST_DIR
  QUAVER_AUDIO_DEVICE, QUAVER_BUFFER_SIZE, QUAVER_SOCKET_PATH, QUAVER_LOCK_FILE
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH.expanduser(),
        metavar="PATH",
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    # Playback
    playback_group = parser.add_argument_group("Playback")
    playback_group.add_argument(
        "--play",
        metavar="PATH",
        help="Start playing the specified audio file or M3U playlist",
    )
    playback_group.add_argument(
        "--queue",
        metavar="PATH",
        help="Add the specified audio file or M3U playlist to the playback queue",
    )
    playback_group.add_argument("--pause", action="store_true", help="Pause or resume playback")
    playback_group.add_argument("--stop", action="store_true", help="Stop playback")
    playback_group.add_argument("--next", action="store_true", help="Next track")
    playback_group.add_argument("--rew", action="store_true", help="Rewind to previous track")

    # Volume
    volume_group = parser.add_argument_group("Volume")
    volume_group.add_argument("--mute", action="store_true", help="Mute or unmute sound")
    volume_group.add_argument("--turn-up", action="store_true", help="Increase volume")
    volume_group.add_argument("--turn-down", action="store_true", help="Decrease volume")
    volume_group.add_argument(
        "--vol",
        type=int,
        metavar="INT",
        help="Set volume (0-24)",
    )

    # Info
    info_group = parser.add_argument_group("Info")
    info_group.add_argument("--info", action="store_true", help="Display track info")
    info_group.add_argument("--list", action="store_true", help="Display current playlist")
    info_group.add_argument(
        "--save",
        action="store_true",
        help="Save the current playlist as M3U",
    )
    info_group.add_argument(
        "--path",
        default="-",
        metavar="DIR",
        help="Directory for --save (default: the configured playlist directory)",
    )
    info_group.add_argument(
        "--devices",
        action="store_true",
        help="List audio output devices and exit",
    )

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to config dict."""
    result: dict = {}
    if getattr(args, "log_level", None):
        result["log_level"] = args.log_level
    return result


def select_action(args: argparse.Namespace) -> Optional[str]:
    """Pick the single action to perform, by fixed precedence."""
    for name in ACTION_PRECEDENCE:
        value = getattr(args, name, None)
        if name == "vol":
            if value is not None and value > -1:
                return name
        elif value:
            return name
    return None


def normalize_path(path: str) -> str:
    """Return an absolute, normalized form of ``path``."""
    return os.path.abspath(os.path.expanduser(path))


def _fail(message: str, code: int) -> int:
    print(f"quaver: {message}", file=sys.stderr)
    return code


# =============================================================================
# Control Commands
# =============================================================================


def _command_argument(action: str, args: argparse.Namespace) -> Any:
    if action == "vol":
        return args.vol
    if action == "save":
        return args.path if args.path == "-" else normalize_path(args.path)
    return None


def _print_result(action: str, args: argparse.Namespace, result: Any) -> None:
    if action == "stop":
        print("See you.")
    elif action in ("turn_up", "turn_down"):
        print(f"vol: {result:g}")
    elif action == "vol":
        if float(args.vol) != result:
            print(f"vol: {result:g}")
    elif action == "info":
        if result is None:
            print("Nothing is playing")
        else:
            print(TrackMetadata.from_dict(result).display())
    elif action == "list":
        print(result)
    elif action == "save":
        print(f"Playlist saved: {result}")


def run_control(action: str, args: argparse.Namespace, config: Config) -> int:
    """
    Send one control command to the running daemon.

    Returns:
        Exit code
    """
    client = ControlClient(config.socket_path)
    try:
        result = client.call(CONTROL_COMMANDS[action], _command_argument(action, args))
    except ConnectionFailedError as e:
        if not InstanceLock(config.lock_file).exists():
            logger.debug("Player server not running")
            return EXIT_SUCCESS
        logger.error(f"Player server connection failed: {e}")
        return _fail(str(e), EXIT_CONNECTION_ERROR)
    except QuaverError as e:
        logger.error(f"{action} failed: {e}")
        return _fail(str(e), EXIT_COMMAND_ERROR)

    _print_result(action, args, result)
    return EXIT_SUCCESS


def run_queue(args: argparse.Namespace, config: Config) -> int:
    """Queue a file or playlist on the running daemon."""
    if not os.path.exists(args.queue):
        return _fail("invalid path specified", EXIT_USAGE_ERROR)

    # Without the lock file nothing is playing to queue onto
    if not InstanceLock(config.lock_file).exists():
        logger.debug("Queue requested without a running player")
        return EXIT_SUCCESS

    client = ControlClient(config.socket_path)
    try:
        client.call(Command.QUEUE, normalize_path(args.queue))
    except ConnectionFailedError as e:
        logger.error(f"Player server connection failed: {e}")
        return _fail(str(e), EXIT_CONNECTION_ERROR)
    except QuaverError as e:
        logger.error(f"Unable to queue: {e}")
        return _fail(f"Unable to queue: {e}", EXIT_COMMAND_ERROR)
    return EXIT_SUCCESS


# =============================================================================
# Daemon
# =============================================================================


def run_play(args: argparse.Namespace, config: Config, supervisor: ProcessSupervisor) -> int:
    """
    Start playback: spawn the daemon, or be the daemon when already spawned.

    Returns:
        Exit code
    """
    if not os.path.exists(args.play):
        logger.error(f"Invalid path: {args.play}")
        return _fail("invalid path specified", EXIT_USAGE_ERROR)

    target = normalize_path(args.play)

    if supervisor.is_child():
        return run_daemon(target, args, supervisor)

    if InstanceLock(config.lock_file).exists():
        logger.debug("Attempt to run more than one instance of the program")
        print("Already in use")
        return EXIT_USAGE_ERROR

    extra_args = ["--log-level", args.log_level] if args.log_level else []
    try:
        pid = supervisor.launch(target, extra_args)
    except ForkFailedError as e:
        logger.error(f"Unable to run Quaver: {e}")
        return _fail(f"Unable to run Quaver: {e}", EXIT_COMMAND_ERROR)

    print(f"[PID:{pid}] Playing")
    return EXIT_SUCCESS


def run_daemon(target: str, args: argparse.Namespace, supervisor: ProcessSupervisor) -> int:
    """Run the daemon in this (already detached) process."""
    logger.info(f"Quaver v{__version__} daemon (pid {os.getpid()})")
    try:
        supervisor.run_child(target, args_to_dict(args))
        return EXIT_SUCCESS

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    except AlreadyRunningError as e:
        logger.error(f"Already running: {e}")
        return EXIT_USAGE_ERROR

    except (QuaverError, AudioEngineError) as e:
        logger.error(f"Playback failed: {e}")
        return EXIT_COMMAND_ERROR

    except OSError as e:
        logger.error(f"Control socket error: {e}")
        return EXIT_CONNECTION_ERROR

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return EXIT_COMMAND_ERROR


def run_devices() -> int:
    """Print the available output devices."""
    try:
        print(format_device_list())
    except AudioEngineError as e:
        return _fail(str(e), EXIT_COMMAND_ERROR)
    return EXIT_SUCCESS


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 2=usage error,
        3=connection error, 4=command failure
    """
    args = parse_args(argv)

    try:
        config = load_config(args.config, args_to_dict(args))
    except ConfigError as e:
        return _fail(f"Configuration error: {e}", EXIT_CONFIG_ERROR)

    setup_logging(config.log_level, config.log_file)

    action = select_action(args)
    if action is None:
        build_parser().print_usage()
        return EXIT_USAGE_ERROR

    if action in CONTROL_COMMANDS:
        return run_control(action, args, config)
    if action == "devices":
        return run_devices()
    if action == "play":
        return run_play(args, config, ProcessSupervisor(args.config))
    return run_queue(args, config)


if __name__ == "__main__":
    sys.exit(main())
