"""
Control socket client used by the CLI.
"""

import logging
import socket
from typing import Any, Optional

from quaver.errors import ConnectionFailedError, error_from_code

from .protocol import MAX_PACKET_SIZE, Command, ProtocolCodec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class ControlClient:
    """Sends single requests to a running daemon."""

    def __init__(
        self,
        socket_path: str,
        timeout: float = DEFAULT_TIMEOUT,
        codec: Optional[ProtocolCodec] = None,
    ):
        self.socket_path = socket_path
        self.timeout = timeout
        self.codec = codec or ProtocolCodec()

    def call(self, command: Command, argument: Any = None) -> Any:
        """
        Run one remote command.

        Args:
            command: Command to run
            argument: Command argument, if the command takes one

        Returns:
            The reply result

        Raises:
            ConnectionFailedError: If the daemon cannot be reached or hangs up
            QuaverError: The error class matching the remote error code
        """
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_SEQPACKET)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self.socket_path)
        except OSError as e:
            sock.close()
            raise ConnectionFailedError(f"Player server connection failed: {e}") from e

        with sock:
            try:
                sock.send(self.codec.encode_request(command, argument))
                data = sock.recv(MAX_PACKET_SIZE)
            except OSError as e:
                raise ConnectionFailedError(f"Player server connection lost: {e}") from e

        if not data:
            raise ConnectionFailedError("Player server closed the connection")

        reply = self.codec.decode_reply(data)
        if not reply.ok:
            logger.debug(f"{command.value} failed remotely: {reply.error_code}")
            raise error_from_code(reply.error_code, reply.error_message)
        return reply.result
