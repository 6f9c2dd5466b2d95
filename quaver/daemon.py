"""
Background daemon supervision.

The CLI process spawns a detached copy of itself, marked through the
environment, which takes the instance lock and runs the player until
playback stops.
"""

import logging
import os
import subprocess
import sys
import threading
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from quaver.app import QuaverDaemon
from quaver.config import Config, ConfigError, load_or_create_config, update_config_file
from quaver.errors import AlreadyRunningError, ForkFailedError

logger = logging.getLogger(__name__)

CHILD_ENV_MARKER = "QUAVER_DAEMON"

# Spawns a detached process and returns its pid
SpawnFunc = Callable[[Sequence[str], Mapping[str, str]], int]


def spawn_detached(argv: Sequence[str], env: Mapping[str, str]) -> int:
    """
    Start ``argv`` in a new session with stdio on /dev/null.

    Raises:
        ForkFailedError: If the process cannot be started
    """
    try:
        process = subprocess.Popen(
            list(argv),
            env=dict(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            close_fds=True,
        )
    except OSError as e:
        logger.error(f"Spawn failed: {e}")
        raise ForkFailedError(f"failed to fork process: {e}") from e
    return process.pid


class InstanceLock:
    """
    Filesystem marker enforcing one daemon per host.

    The file is created atomically; its content (the owner pid) is only
    informational. ``release`` removes it at most once.
    """

    def __init__(self, path: str):
        self.path = path
        self._held = False
        self._guard = threading.Lock()

    def exists(self) -> bool:
        return os.path.exists(self.path)

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> bool:
        """
        Create the lock file.

        Returns:
            True if the file was created, False if it could not be created
            for a reason other than an existing lock

        Raises:
            AlreadyRunningError: If the lock file already exists
        """
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise AlreadyRunningError(f"lock file {self.path} exists")
        except OSError as e:
            logger.error(f"Unable to create lock file {self.path}: {e}")
            return False

        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()}\n")
        self._held = True
        logger.debug(f"Create lockfile {self.path}")
        return True

    def release(self) -> None:
        """Remove the lock file if this instance created it."""
        with self._guard:
            if not self._held:
                return
            self._held = False

        try:
            os.unlink(self.path)
        except OSError as e:
            logger.error(f"Unable to remove lock file: {e}")
        else:
            logger.debug("Remove lockfile")

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


class ProcessSupervisor:
    """
    Starts the background daemon and runs it once started.

    The same entry point serves both sides: the foreground CLI calls
    ``launch`` and the spawned child, recognized by ``is_child``, calls
    ``run_child``.
    """

    def __init__(
        self,
        config_path: Path,
        spawn: SpawnFunc = spawn_detached,
        environ: Optional[Mapping[str, str]] = None,
        daemon_factory: Callable[[Config], QuaverDaemon] = QuaverDaemon,
    ):
        """
        Initialize supervisor.

        Args:
            config_path: Config file the daemon loads and updates
            spawn: Starts the detached child
            environ: Process environment (default: os.environ)
            daemon_factory: Builds the daemon from its configuration
        """
        self.config_path = config_path
        self._spawn = spawn
        self._environ = environ if environ is not None else os.environ
        self._daemon_factory = daemon_factory

    def is_child(self) -> bool:
        return self._environ.get(CHILD_ENV_MARKER) == "1"

    def child_argv(self, target: str, extra_args: Sequence[str] = ()) -> list[str]:
        return [
            sys.executable,
            "-m",
            "quaver",
            "--config",
            str(self.config_path),
            *extra_args,
            "--play",
            target,
        ]

    def launch(self, target: str, extra_args: Sequence[str] = ()) -> int:
        """
        Spawn the detached daemon for ``target``.

        Returns:
            Process id of the daemon

        Raises:
            ForkFailedError: If the process cannot be started
        """
        env = dict(self._environ)
        env[CHILD_ENV_MARKER] = "1"
        pid = self._spawn(self.child_argv(target, extra_args), env)
        logger.debug(f"Process forked with PID:{pid}")
        return pid

    def run_child(self, target: str, cli_args: Optional[dict] = None) -> None:
        """
        Run the daemon in this process until playback stops.

        Raises:
            ConfigError: If the configuration is invalid
            AlreadyRunningError: If another daemon holds the lock
        """
        config = load_or_create_config(self.config_path, cli_args)

        lock = InstanceLock(config.lock_file)
        lock.acquire()
        try:
            daemon = self._daemon_factory(config)
            try:
                daemon.run(target)
            finally:
                self._persist_volume(daemon.volume_level)
        finally:
            lock.release()

    def _persist_volume(self, volume_level: float) -> None:
        try:
            update_config_file(self.config_path, volume_level=volume_level)
        except ConfigError as e:
            logger.error(f"Unable to save config: {e}")
