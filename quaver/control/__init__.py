"""Local control channel between the CLI and the daemon."""

from .client import ControlClient
from .handler import CommandHandler
from .protocol import Command, ProtocolCodec, Reply, Request
from .server import CommandServer

__all__ = [
    "Command",
    "CommandHandler",
    "CommandServer",
    "ControlClient",
    "ProtocolCodec",
    "Reply",
    "Request",
]
