"""
Error taxonomy shared by the daemon, the control channel and the CLI.

Every error carries a stable ``code`` so it can cross the control socket
and be raised again as the same class on the client side.
"""

from typing import Optional


class QuaverError(Exception):
    """Base class for player errors."""

    code = "Error"


class NotFoundError(QuaverError):
    """Target path does not exist."""

    code = "NotFound"


class UnsupportedFormatError(QuaverError):
    """File exists but no decoder handles its format."""

    code = "UnsupportedFormat"


class InvalidPathError(QuaverError):
    """Path argument cannot be normalized or points to a missing directory."""

    code = "InvalidPath"


class AlreadyRunningError(QuaverError):
    """Another daemon instance holds the lock file."""

    code = "AlreadyRunning"


class ForkFailedError(QuaverError):
    """The background daemon could not be spawned."""

    code = "ForkFailed"


class MalformedPlaylistError(QuaverError):
    """M3U file is missing its header or is too short to parse."""

    code = "MalformedPlaylist"


class ConnectionFailedError(QuaverError):
    """Client could not reach a daemon that should be running."""

    code = "ConnectionFailed"


class ProtocolError(QuaverError):
    """A control packet could not be decoded or has the wrong shape."""

    code = "ProtocolError"


class CommandError(QuaverError):
    """Remote call failed with a code that has no dedicated class."""

    def __init__(self, message: str, code: str = "Error"):
        super().__init__(message)
        self.code = code


_ERRORS_BY_CODE: dict[str, type[QuaverError]] = {
    cls.code: cls
    for cls in (
        NotFoundError,
        UnsupportedFormatError,
        InvalidPathError,
        AlreadyRunningError,
        ForkFailedError,
        MalformedPlaylistError,
        ConnectionFailedError,
        ProtocolError,
    )
}


def error_from_code(code: Optional[str], message: str) -> QuaverError:
    """Build the exception matching a wire error code."""
    cls = _ERRORS_BY_CODE.get(code or "")
    if cls is None:
        return CommandError(message, code=code or "Error")
    return cls(message)
