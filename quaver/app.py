"""
Quaver daemon application.

Main orchestrator that wires together the audio engine, playlist, playback
engine and control server, and manages their lifecycle.
"""

import logging
import signal
import threading
from typing import Callable, Optional

from quaver.audio import AudioEngine, LocalAudioEngine
from quaver.config import Config
from quaver.control import CommandHandler, CommandServer
from quaver.playback import (
    PlaybackEngine,
    Playlist,
    Track,
    VOLUME_MAX,
    VOLUME_MIN,
    engine_from_scale,
    open_track,
)

logger = logging.getLogger(__name__)


class QuaverDaemon:
    """
    Running player session.

    Orchestrates all components:
    - Audio output (LocalAudioEngine)
    - Playback (Playlist, PlaybackEngine)
    - Control socket (CommandServer, CommandHandler)

    Usage:
        config = load_config(...)
        daemon = QuaverDaemon(config)
        daemon.run("/music/album.m3u")
    """

    def __init__(
        self,
        config: Config,
        audio: Optional[AudioEngine] = None,
        track_loader: Callable[[str], Track] = open_track,
        home_dir: Optional[str] = None,
    ):
        """
        Initialize the daemon.

        Args:
            config: Validated configuration
            audio: Audio engine (default: LocalAudioEngine from config)
            track_loader: Turns a file path into a Track
            home_dir: Base for the default playlist directory (default: ~)
        """
        self._config = config
        self._audio = audio
        self._track_loader = track_loader
        self._home_dir = home_dir
        self._is_running = False

        # Components (initialized in start())
        self._playlist: Optional[Playlist] = None
        self._engine: Optional[PlaybackEngine] = None
        self._server: Optional[CommandServer] = None

    def _initial_volume(self) -> float:
        volume = engine_from_scale(self._config.volume_level)
        if volume > VOLUME_MAX:
            logger.debug(
                f"Volume level exceeds maximum (requested: {volume}, limited to: {VOLUME_MAX})"
            )
            return VOLUME_MAX
        if volume < VOLUME_MIN:
            logger.debug(
                f"Volume level is below minimum (requested: {volume}, limited to: {VOLUME_MIN})"
            )
            return VOLUME_MIN
        return volume

    def start(self, target: str) -> None:
        """
        Start the daemon and hand the first track to playback.

        Startup order:
        1. Audio engine
        2. Playlist and playback engine, with ``target`` queued
        3. Control server
        4. First hand-off

        Args:
            target: Absolute path of a file or M3U playlist

        Raises:
            AudioEngineError: If the output device cannot be opened
            QuaverError: If ``target`` cannot be queued
            OSError: If the control socket cannot be bound
        """
        logger.info("Starting Quaver...")
        self._is_running = True

        # 1. Audio engine
        if self._audio is None:
            self._audio = LocalAudioEngine(
                device=self._config.audio_device,
                buffer_size=self._config.buffer_size,
            )
        self._audio.init(self._config.sample_rate)
        logger.info(f"Audio engine ready: {self._audio.name}")

        # 2. Playlist and engine
        self._playlist = Playlist()
        self._engine = PlaybackEngine(
            self._playlist,
            self._audio,
            volume=self._initial_volume(),
            playlist_dir=self._config.playlist_dir,
            track_loader=self._track_loader,
            home_dir=self._home_dir,
        )
        self._engine.queue(target)

        # 3. Control server
        self._server = CommandServer(self._config.socket_path, CommandHandler(self._engine))
        self._server.start()

        # 4. Start playing
        self._engine.start()
        logger.info("Quaver started")

    def serve(self) -> None:
        """Run the playback loop until playback stops."""
        if self._engine is None:
            raise RuntimeError("Daemon is not started")
        self._engine.play_loop()

    def stop(self) -> None:
        """
        Stop all components.

        Shutdown order:
        1. Stop playback
        2. Close control server
        3. Close audio engine
        4. Release playlist streams
        """
        if not self._is_running:
            return

        logger.info("Stopping Quaver...")
        self._is_running = False

        # 1. Stop playback
        if self._engine:
            try:
                self._engine.stop()
            except Exception as e:
                logger.warning(f"Error stopping playback: {e}")

        # 2. Close control server
        if self._server:
            try:
                self._server.close()
            except Exception as e:
                logger.warning(f"Error closing control server: {e}")

        # 3. Close audio engine
        if self._audio:
            try:
                self._audio.close()
            except Exception as e:
                logger.warning(f"Error closing audio engine: {e}")

        # 4. Release streams
        if self._playlist:
            try:
                self._playlist.close()
            except Exception as e:
                logger.warning(f"Error closing playlist: {e}")

        logger.info("Quaver stopped")

    def run(self, target: str) -> None:
        """
        Run the daemon until playback stops or a signal arrives.

        Sets up signal handlers for graceful shutdown on SIGINT/SIGTERM.
        """
        if threading.current_thread() is threading.main_thread():

            def handle_signal(signum: int, frame: object) -> None:
                logger.info("Shutdown signal received")
                if self._engine is not None:
                    # Playback stop takes locks the interrupted thread may hold
                    threading.Thread(target=self._engine.stop, name="quaver-signal").start()

            for sig in (signal.SIGINT, signal.SIGTERM):
                signal.signal(sig, handle_signal)

        try:
            self.start(target)
            self.serve()
        finally:
            self.stop()

    @property
    def volume_level(self) -> float:
        """Volume on the user scale, for persisting on shutdown."""
        if self._engine is None:
            return self._config.volume_level
        return self._engine.volume_level

    @property
    def engine(self) -> Optional[PlaybackEngine]:
        return self._engine

    @property
    def is_running(self) -> bool:
        """Check if the daemon is running."""
        return self._is_running
