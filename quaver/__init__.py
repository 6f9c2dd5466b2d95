"""
Quaver - Background audio player daemon.

A single-user player whose playback session lives in a detached process and
is controlled through a local socket by short-lived CLI invocations.
"""

__version__ = "0.1.0"

from .app import QuaverDaemon
from .config import Config, ConfigError, load_config

__all__ = [
    "__version__",
    "QuaverDaemon",
    "Config",
    "load_config",
    "ConfigError",
]
