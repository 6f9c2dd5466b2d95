"""
Control channel message encoding and decoding.

Every request and every reply is one JSON document in one socket packet.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from quaver.errors import ProtocolError, QuaverError

logger = logging.getLogger(__name__)

# Largest packet accepted on the control socket
MAX_PACKET_SIZE = 65536

# Error codes produced by the control layer itself
ERR_UNKNOWN_COMMAND = "UnknownCommand"
ERR_INVALID_ARGUMENT = "InvalidArgument"
ERR_INTERNAL = "Error"


class Command(str, Enum):
    """Remote commands understood by the daemon."""

    PAUSE = "Pause"
    STOP = "Stop"
    NEXT = "Next"
    REWIND = "Rewind"
    MUTE = "Mute"
    TURN_UP = "TurnUp"
    TURN_DOWN = "TurnDown"
    SET_VOL = "SetVol"
    QUEUE = "Queue"
    TRACK_INFO = "TrackInfo"
    PLAYLIST_INFO = "PlaylistInfo"
    SAVE_PLAYLIST = "SavePlaylist"


# Required argument type per command; None means no argument
ARGUMENT_TYPES: dict[Command, Optional[type]] = {
    Command.PAUSE: None,
    Command.STOP: None,
    Command.NEXT: None,
    Command.REWIND: None,
    Command.MUTE: None,
    Command.TURN_UP: None,
    Command.TURN_DOWN: None,
    Command.SET_VOL: int,
    Command.QUEUE: str,
    Command.TRACK_INFO: None,
    Command.PLAYLIST_INFO: None,
    Command.SAVE_PLAYLIST: str,
}


@dataclass
class Request:
    """A decoded control request."""

    command: str
    argument: Any = None


@dataclass
class Reply:
    """A control reply: either a result or an error code with message."""

    ok: bool = True
    result: Any = None
    error_code: str = ""
    error_message: str = ""

    @classmethod
    def success(cls, result: Any = None) -> "Reply":
        return cls(ok=True, result=result)

    @classmethod
    def failure(cls, code: str, message: str) -> "Reply":
        return cls(ok=False, error_code=code, error_message=message)

    @classmethod
    def from_error(cls, error: QuaverError) -> "Reply":
        return cls.failure(error.code, str(error))


def check_argument(command: Command, argument: Any) -> Optional[str]:
    """
    Validate the argument shape of a request.

    Returns:
        A description of the problem, or None if the argument fits
    """
    expected = ARGUMENT_TYPES[command]
    if expected is None:
        if argument is not None:
            return f"{command.value} takes no argument"
        return None
    # bool is an int subclass but never a valid volume
    if isinstance(argument, bool) or not isinstance(argument, expected):
        return f"{command.value} expects {expected.__name__}, got {type(argument).__name__}"
    return None


class ProtocolCodec:
    """Encodes and decodes control packets."""

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def encode_request(self, command: Command, argument: Any = None) -> bytes:
        return self._dump({"command": command.value, "argument": argument})

    def encode_reply(self, reply: Reply) -> bytes:
        if reply.ok:
            return self._dump({"ok": True, "result": reply.result})
        return self._dump(
            {
                "ok": False,
                "error": {"code": reply.error_code, "message": reply.error_message},
            }
        )

    def _dump(self, document: dict[str, Any]) -> bytes:
        data = json.dumps(document, ensure_ascii=False).encode("utf-8")
        if len(data) > MAX_PACKET_SIZE:
            raise ProtocolError(f"Packet too large ({len(data)} bytes)")
        return data

    # -------------------------------------------------------------------------
    # Decoding
    # -------------------------------------------------------------------------

    def decode_request(self, data: bytes) -> Request:
        """
        Decode a request packet.

        Raises:
            ProtocolError: If the packet is not a JSON request object
        """
        document = self._load(data)
        command = document.get("command")
        if not isinstance(command, str):
            raise ProtocolError("Request is missing a command name")
        return Request(command=command, argument=document.get("argument"))

    def decode_reply(self, data: bytes) -> Reply:
        """
        Decode a reply packet.

        Raises:
            ProtocolError: If the packet is not a JSON reply object
        """
        document = self._load(data)
        ok = document.get("ok")
        if ok is True:
            return Reply.success(document.get("result"))
        if ok is False:
            error = document.get("error")
            if not isinstance(error, dict):
                raise ProtocolError("Error reply is missing its error object")
            return Reply.failure(
                str(error.get("code") or ERR_INTERNAL),
                str(error.get("message") or ""),
            )
        raise ProtocolError("Reply is missing its ok flag")

    def _load(self, data: bytes) -> dict[str, Any]:
        try:
            document = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProtocolError(f"Undecodable packet: {e}") from e
        if not isinstance(document, dict):
            raise ProtocolError("Packet is not a JSON object")
        return document
