"""
Control command handler.

Maps each remote command onto a playback engine operation.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable

from quaver.errors import QuaverError

from .protocol import (
    ERR_INTERNAL,
    ERR_INVALID_ARGUMENT,
    ERR_UNKNOWN_COMMAND,
    Command,
    Reply,
    Request,
    check_argument,
)

if TYPE_CHECKING:
    from quaver.playback.engine import PlaybackEngine

logger = logging.getLogger(__name__)


class CommandHandler:
    """
    Dispatches control requests to the playback engine.

    Handlers only toggle state or enqueue work; none of them waits for a
    track to finish.
    """

    def __init__(self, engine: "PlaybackEngine"):
        """Initialize handler."""
        self.engine = engine
        self._handlers: dict[Command, Callable[[Any], Any]] = {
            Command.PAUSE: self._handle_pause,
            Command.STOP: self._handle_stop,
            Command.NEXT: self._handle_next,
            Command.REWIND: self._handle_rewind,
            Command.MUTE: self._handle_mute,
            Command.TURN_UP: self._handle_turn_up,
            Command.TURN_DOWN: self._handle_turn_down,
            Command.SET_VOL: self._handle_set_vol,
            Command.QUEUE: self._handle_queue,
            Command.TRACK_INFO: self._handle_track_info,
            Command.PLAYLIST_INFO: self._handle_playlist_info,
            Command.SAVE_PLAYLIST: self._handle_save_playlist,
        }

    def get_commands(self) -> list[Command]:
        """Get list of commands this handler processes."""
        return list(self._handlers)

    def handle(self, request: Request) -> Reply:
        """Run one request and build its reply."""
        try:
            command = Command(request.command)
        except ValueError:
            logger.warning(f"Unknown command: {request.command!r}")
            return Reply.failure(ERR_UNKNOWN_COMMAND, f"unknown command: {request.command}")

        problem = check_argument(command, request.argument)
        if problem is not None:
            logger.warning(f"Rejected {command.value}: {problem}")
            return Reply.failure(ERR_INVALID_ARGUMENT, problem)

        logger.debug(f"Got {command.value} command")
        try:
            return Reply.success(self._handlers[command](request.argument))
        except QuaverError as e:
            logger.warning(f"{command.value} failed: {e}")
            return Reply.from_error(e)
        except OSError as e:
            logger.error(f"{command.value} failed: {e}")
            return Reply.failure(ERR_INTERNAL, str(e))
        except Exception as e:
            logger.error(f"Error handling command {command.value}: {e}", exc_info=True)
            return Reply.failure(ERR_INTERNAL, str(e))

    def _handle_pause(self, argument: None) -> None:
        self.engine.pause()

    def _handle_stop(self, argument: None) -> None:
        self.engine.stop()

    def _handle_next(self, argument: None) -> None:
        self.engine.next()

    def _handle_rewind(self, argument: None) -> None:
        self.engine.rewind()

    def _handle_mute(self, argument: None) -> None:
        self.engine.mute()

    def _handle_turn_up(self, argument: None) -> float:
        return self.engine.turn_up()

    def _handle_turn_down(self, argument: None) -> float:
        return self.engine.turn_down()

    def _handle_set_vol(self, argument: int) -> float:
        return self.engine.set_volume(argument)

    def _handle_queue(self, argument: str) -> None:
        self.engine.queue(argument)

    def _handle_track_info(self, argument: None) -> Any:
        metadata = self.engine.track_info()
        return metadata.to_dict() if metadata is not None else None

    def _handle_playlist_info(self, argument: None) -> str:
        return self.engine.playlist_info()

    def _handle_save_playlist(self, argument: str) -> str:
        return self.engine.save_playlist(argument)
