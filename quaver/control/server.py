"""
Control socket server.

Serves control requests on a Unix-domain SOCK_SEQPACKET socket, one accepted
connection at a time, on a dedicated thread.
"""

import logging
import os
import socket
import threading
from typing import Optional

from quaver.errors import ProtocolError

from .handler import CommandHandler
from .protocol import MAX_PACKET_SIZE, ProtocolCodec, Reply

logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 0.5
CONNECTION_TIMEOUT = 10.0
CLOSE_JOIN_TIMEOUT = 2.0


class CommandServer:
    """
    Accept loop for the control socket.

    Requests on one connection are answered in order, one reply per request.
    Closing the server while the accept loop waits is part of normal shutdown
    and is not reported as an error.
    """

    def __init__(
        self,
        socket_path: str,
        handler: CommandHandler,
        codec: Optional[ProtocolCodec] = None,
    ):
        """
        Initialize server.

        Args:
            socket_path: Filesystem path of the control socket
            handler: Dispatches decoded requests
            codec: Packet codec (default: ProtocolCodec())
        """
        self.socket_path = socket_path
        self.handler = handler
        self.codec = codec or ProtocolCodec()

        self._listener: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._closing = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Bind the socket and start the accept thread.

        Raises:
            OSError: If the socket cannot be bound
        """
        self._remove_socket_file()

        listener = socket.socket(socket.AF_UNIX, socket.SOCK_SEQPACKET)
        try:
            listener.bind(self.socket_path)
            listener.listen()
        except OSError:
            listener.close()
            raise
        listener.settimeout(ACCEPT_POLL_INTERVAL)

        self._listener = listener
        self._closing.clear()
        self._thread = threading.Thread(
            target=self._accept_loop,
            name="quaver-control",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Control socket listening on {self.socket_path}")

    def close(self) -> None:
        """Stop accepting, close the listener and remove the socket file."""
        if self._closing.is_set() and self._listener is None:
            return
        self._closing.set()

        if self._listener is not None:
            self._listener.close()
            self._listener = None

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=CLOSE_JOIN_TIMEOUT)
        self._thread = None

        self._remove_socket_file()
        logger.debug("Control socket closed")

    def _remove_socket_file(self) -> None:
        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Unable to remove socket file {self.socket_path}: {e}")

    # =========================================================================
    # Accept Loop
    # =========================================================================

    def _accept_loop(self) -> None:
        while not self._closing.is_set():
            listener = self._listener
            if listener is None:
                return
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._closing.is_set():
                    return
                logger.error(f"Control socket accept failed: {e}")
                return

            with conn:
                self._serve_connection(conn)

    def _serve_connection(self, conn: socket.socket) -> None:
        conn.settimeout(CONNECTION_TIMEOUT)
        while True:
            try:
                data = conn.recv(MAX_PACKET_SIZE)
            except socket.timeout:
                logger.debug("Control connection idle, closing")
                return
            except OSError as e:
                logger.debug(f"Control connection dropped: {e}")
                return
            if not data:
                return

            reply = self._dispatch(data)
            try:
                conn.send(self._encode(reply))
            except OSError as e:
                logger.debug(f"Unable to send reply: {e}")
                return

    def _dispatch(self, data: bytes) -> Reply:
        try:
            request = self.codec.decode_request(data)
        except ProtocolError as e:
            logger.warning(f"Bad control packet: {e}")
            return Reply.from_error(e)
        return self.handler.handle(request)

    def _encode(self, reply: Reply) -> bytes:
        try:
            return self.codec.encode_reply(reply)
        except (ProtocolError, TypeError, ValueError) as e:
            logger.error(f"Unable to encode reply: {e}")
            return self.codec.encode_reply(Reply.failure(ProtocolError.code, str(e)))
