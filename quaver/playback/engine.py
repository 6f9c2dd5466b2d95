"""
Playback state machine.

Owns the current track, applies control commands, and feeds the playback
loop through the playlist's hand-off channel.
"""

import logging
import os
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import IntEnum
from typing import Callable, Optional

from quaver.audio.base import AudioEngine, AudioEngineError
from quaver.errors import InvalidPathError

from . import m3u
from .playlist import Playlist
from .track import Track, TrackMetadata, open_track
from .volume import (
    DEFAULT_VOLUME,
    SCALE_MIN,
    VOLUME_MAX,
    VOLUME_MIN,
    VOLUME_STEP,
    clamp_volume,
    engine_from_scale,
    scale_from_engine,
)

logger = logging.getLogger(__name__)

CURRENT_MARKER = "►"
PLAYLIST_FILE_FORMAT = "%Y-%m-%d_%H-%M-%S.m3u"


class PlaybackStatus(IntEnum):
    """Playback status; muted is tracked separately."""

    EMPTY = 0  # Nothing current
    PLAYING = 1
    PAUSED = 2
    STOPPED = 3  # Terminal


@dataclass
class PlaybackState:
    """
    Mutable playback flags.

    The audio engine reads ``paused``, ``muted`` and ``volume`` on every
    render, so every write happens under the audio engine lock.
    """

    current: Optional[Track] = None
    paused: bool = False
    muted: bool = False
    volume: float = DEFAULT_VOLUME
    live: bool = True


class PlaybackEngine:
    """
    Drives playback of a playlist through an audio engine.

    Control operations are safe to call from any thread. ``play_loop`` runs on
    the daemon's main thread and is the only consumer of the hand-off.
    """

    def __init__(
        self,
        playlist: Playlist,
        audio: AudioEngine,
        volume: float = DEFAULT_VOLUME,
        playlist_dir: str = "Quaver",
        track_loader: Callable[[str], Track] = open_track,
        home_dir: Optional[str] = None,
    ):
        """
        Initialize the engine.

        Args:
            playlist: Playlist to play from
            audio: Output engine; its lock guards all playback state
            volume: Initial engine-domain volume, clamped to the valid range
            playlist_dir: Directory under ``home_dir`` used by save_playlist("-")
            track_loader: Turns a file path into a Track
            home_dir: Base for the default playlist directory (default: ~)
        """
        self.playlist = playlist
        self.audio = audio
        self.state = PlaybackState(volume=clamp_volume(volume))
        self._playlist_dir = playlist_dir
        self._track_loader = track_loader
        self._home_dir = home_dir or os.path.expanduser("~")

        self._stop_lock = threading.Lock()
        # Bumped whenever the active stream is replaced or dropped, so late
        # finish callbacks from an older stream are ignored.
        self._generation = 0

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def status(self) -> PlaybackStatus:
        with self.audio.lock:
            if not self.state.live:
                return PlaybackStatus.STOPPED
            if self.state.current is None:
                return PlaybackStatus.EMPTY
            if self.state.paused:
                return PlaybackStatus.PAUSED
            return PlaybackStatus.PLAYING

    @property
    def current(self) -> Optional[Track]:
        with self.audio.lock:
            return self.state.current

    @property
    def volume_level(self) -> float:
        """Current volume on the user scale."""
        with self.audio.lock:
            return scale_from_engine(self.state.volume)

    # =========================================================================
    # Queue
    # =========================================================================

    def queue(self, path: str) -> int:
        """
        Append a file or an M3U playlist to the playlist.

        Args:
            path: Audio file or .m3u/.m3u8 playlist

        Returns:
            Number of tracks appended

        Raises:
            NotFoundError: File or playlist does not exist
            UnsupportedFormatError: Single file cannot be decoded
            MalformedPlaylistError: Playlist file is not valid M3U
        """
        if m3u.is_playlist_file(path):
            tracks = m3u.load(path, loader=self._track_loader)
        else:
            tracks = [self._track_loader(path)]

        with self.audio.lock:
            self.playlist.queue(*tracks)
            if self.state.current is None and tracks:
                self.state.current = tracks[0]

        logger.debug(
            f"Queued {len(tracks)} track(s) from {path}, songs in queue: {self.playlist.size()}"
        )
        return len(tracks)

    # =========================================================================
    # Playback Controls
    # =========================================================================

    def pause(self) -> None:
        """Toggle pause. No effect when nothing is current."""
        with self.audio.lock:
            if self.state.current is None:
                return
            self.state.paused = not self.state.paused
            paused = self.state.paused
        logger.debug("Player paused." if paused else "Player resumed.")

    def mute(self) -> None:
        """Toggle mute; volume is kept."""
        with self.audio.lock:
            self.state.muted = not self.state.muted
            muted = self.state.muted
        logger.debug("Player muted." if muted else "Player unmuted.")

    def turn_up(self) -> float:
        """Raise volume by one step and unmute. Returns the new user scale."""
        return self._step_volume(VOLUME_STEP)

    def turn_down(self) -> float:
        """Lower volume by one step and unmute. Returns the new user scale."""
        return self._step_volume(-VOLUME_STEP)

    def _step_volume(self, delta: float) -> float:
        with self.audio.lock:
            self.state.muted = False
            self.state.volume = clamp_volume(self.state.volume + delta)
            scale = scale_from_engine(self.state.volume)
        logger.debug(f"Volume set to {scale:g}")
        return scale

    def set_volume(self, scale: float) -> float:
        """
        Set volume from a user-scale value.

        Values above the scale maximum are clamped. A value at or below the
        scale minimum lands on the minimum volume and mutes output.

        Returns:
            Resulting volume on the user scale
        """
        volume = min(engine_from_scale(scale), VOLUME_MAX)
        with self.audio.lock:
            if scale <= SCALE_MIN:
                self.state.volume = VOLUME_MIN
                self.state.muted = True
            else:
                self.state.volume = volume
                self.state.muted = False
            result = scale_from_engine(self.state.volume)
        logger.debug(f"Volume set to {result:g} (requested {scale})")
        return result

    def next(self) -> None:
        """Skip to the next track, or stop at the end of the playlist."""
        with self.audio.lock:
            current = self.state.current
            successor = self.playlist.next_of(current) if current is not None else None
            if successor is not None:
                self._drop_active_stream()
                self.state.current = successor

        if successor is None:
            logger.debug("Next requested on last track, stopping")
            self.stop()
            return

        logger.debug(f"Skipping to {successor.file_name}")
        self.ready()

    def rewind(self) -> None:
        """Go back one track, or restart the current one at the head."""
        with self.audio.lock:
            current = self.state.current
            if current is None:
                return
            predecessor = self.playlist.prev_of(current)
            if predecessor is None:
                current.stream.seek(0)
            else:
                self._drop_active_stream()
                self.state.current = predecessor

        if predecessor is None:
            logger.debug(f"Restarting {current.file_name}")
            return

        logger.debug(f"Rewinding to {predecessor.file_name}")
        self.ready()

    def stop(self) -> bool:
        """
        Stop playback for good.

        Returns:
            True for the call that stopped, False if already stopped
        """
        with self._stop_lock:
            if not self.state.live:
                return False
            with self.audio.lock:
                self.state.live = False
                self._drop_active_stream()
            self.playlist.channel.close()

        logger.info("Player stopped.")
        return True

    def _drop_active_stream(self) -> None:
        # Callers hold the audio lock
        self._generation += 1
        self.audio.halt()

    # =========================================================================
    # Hand-off
    # =========================================================================

    def ready(self) -> None:
        """
        Hand the current track to the playback loop from its start.

        Blocks until the loop takes it. Stops playback when nothing is current.
        """
        with self.audio.lock:
            track = self.state.current
            if track is not None:
                track.stream.seek(0)

        if track is None:
            self.stop()
            return

        if not self.playlist.channel.send(track):
            logger.debug(f"Hand-off closed, dropping {track.file_name}")

    def start(self) -> None:
        """Begin playback of the current track without blocking the caller."""
        self._ready_in_background()

    def _ready_in_background(self) -> None:
        threading.Thread(target=self.ready, name="quaver-ready", daemon=True).start()

    def start_stream(self, track: Track) -> None:
        """
        Start rendering ``track``.

        Raises:
            AudioEngineError: If the output cannot play the stream
        """
        with self.audio.lock:
            if not self.state.live or track is not self.state.current:
                logger.debug(f"Ignoring stale hand-off of {track.file_name}")
                return
            self.state.paused = False
            self._generation += 1
            generation = self._generation

        self.audio.play(
            track.stream,
            self.state,
            on_finished=lambda: self._on_stream_finished(track, generation),
        )

        # A stop/next/rewind while the output was opening has already halted,
        # before this stream was installed
        with self.audio.lock:
            if generation != self._generation or not self.state.live:
                self.audio.halt()
                logger.debug(f"Dropped {track.file_name}, replaced while starting")
                return
        logger.info(f"Playing {track.file_name}")

    def _on_stream_finished(self, track: Track, generation: int) -> None:
        """Advance after ``track`` played to its end."""
        with self.audio.lock:
            if generation != self._generation or track is not self.state.current:
                logger.debug(f"Ignoring finish of replaced stream {track.file_name}")
                return
            self.state.current = self.playlist.next_of(track)

        logger.debug(f"Finished {track.file_name}")
        self.ready()

    def _skip_failed(self, track: Track) -> None:
        with self.audio.lock:
            if track is self.state.current:
                self.state.current = self.playlist.next_of(track)
        # The loop itself is the receiver, so the next hand-off must come
        # from another thread.
        self._ready_in_background()

    def play_loop(self) -> None:
        """Consume the hand-off until playback stops."""
        logger.debug("Playback loop started")
        while True:
            track = self.playlist.channel.receive()
            if track is None:
                break
            try:
                self.start_stream(track)
            except AudioEngineError as e:
                logger.error(f"Unable to play {track.path}: {e}")
                self._skip_failed(track)
        logger.debug("Playback loop finished")

    # =========================================================================
    # Info
    # =========================================================================

    def track_info(self) -> Optional[TrackMetadata]:
        """Metadata of the current track, or None when nothing is current."""
        with self.audio.lock:
            track = self.state.current
        if track is None:
            return None
        return replace(track.metadata, file_name=track.file_name)

    def playlist_info(self) -> str:
        """Numbered playlist listing with the current entry marked."""
        tracks = self.playlist.list_tracks()
        current = self.current
        if not tracks:
            return ""

        width = len(str(len(tracks)))
        lines = []
        for number, track in enumerate(tracks, start=1):
            marker = CURRENT_MARKER if track is current else " "
            lines.append(f"{marker}{number:0{width}d} [{track.file_name}]")
        return "\n".join(lines)

    def save_playlist(self, directory: str) -> str:
        """
        Write the playlist as M3U into ``directory``.

        Args:
            directory: Existing directory, or "-" for the default playlist
                directory under the home directory

        Returns:
            Path of the written file

        Raises:
            InvalidPathError: If ``directory`` does not exist
        """
        if directory == "-":
            directory = os.path.join(self._home_dir, self._playlist_dir)
            os.makedirs(directory, exist_ok=True)
        elif not os.path.isdir(directory):
            raise InvalidPathError(f"invalid path specified: {directory}")

        path = os.path.join(directory, datetime.now().strftime(PLAYLIST_FILE_FORMAT))
        m3u.save(self.playlist.list_tracks(), path)
        return path
