"""
Playlist storage and the track hand-off to the playback loop.

Tracks live in an append-only list; neighbours are found by index instead of
stored links, so the chain always terminates at both ends.
"""

import logging
import threading
from typing import Optional

from .track import Track

logger = logging.getLogger(__name__)


class TrackChannel:
    """
    One-slot rendezvous channel carrying tracks to the playback loop.

    ``send`` returns only once a receiver has taken the track (or the channel
    closed), so producer and consumer meet once per track. Closing is terminal:
    pending and future sends fail, receives return ``None``.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._slot: Optional[Track] = None
        self._full = False
        self._closed = False
        self._sent = 0
        self._received = 0

    def send(self, track: Track) -> bool:
        """
        Hand ``track`` to the receiver.

        Returns:
            True once received, False if the channel is or became closed
        """
        with self._cond:
            while self._full and not self._closed:
                self._cond.wait()
            if self._closed:
                return False

            self._slot = track
            self._full = True
            self._sent += 1
            ticket = self._sent
            self._cond.notify_all()

            while self._received < ticket and not self._closed:
                self._cond.wait()
            return self._received >= ticket

    def receive(self) -> Optional[Track]:
        """Wait for the next track; ``None`` means the channel closed."""
        with self._cond:
            while not self._full and not self._closed:
                self._cond.wait()
            if self._closed:
                return None

            track = self._slot
            self._slot = None
            self._full = False
            self._received += 1
            self._cond.notify_all()
            return track

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._slot = None
            self._full = False
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed


class Playlist:
    """
    Ordered, append-only collection of tracks.

    The playlist owns its tracks and closes their streams in ``close()``.
    """

    def __init__(self) -> None:
        self._tracks: list[Track] = []
        self._lock = threading.Lock()
        self.channel = TrackChannel()

    def queue(self, *tracks: Track) -> None:
        """Append tracks at the tail, in call order."""
        with self._lock:
            for track in tracks:
                track.index = len(self._tracks)
                self._tracks.append(track)

    def size(self) -> int:
        return len(self._tracks)

    def list_tracks(self) -> list[Track]:
        """Snapshot of the tracks in playlist order."""
        with self._lock:
            return list(self._tracks)

    def head(self) -> Optional[Track]:
        with self._lock:
            return self._tracks[0] if self._tracks else None

    def index_of(self, track: Track) -> int:
        """Position of ``track``, or -1 if it belongs to another playlist."""
        with self._lock:
            index = track.index
            if 0 <= index < len(self._tracks) and self._tracks[index] is track:
                return index
            return -1

    def next_of(self, track: Track) -> Optional[Track]:
        """Successor of ``track``; None at the tail."""
        index = self.index_of(track)
        with self._lock:
            if index < 0 or index + 1 >= len(self._tracks):
                return None
            return self._tracks[index + 1]

    def prev_of(self, track: Track) -> Optional[Track]:
        """Predecessor of ``track``; None at the head."""
        index = self.index_of(track)
        if index <= 0:
            return None
        with self._lock:
            return self._tracks[index - 1]

    def close(self) -> None:
        """Close the hand-off and release every track stream."""
        self.channel.close()
        for track in self.list_tracks():
            track.close()
        logger.debug(f"Playlist closed ({self.size()} tracks released)")

    def __len__(self) -> int:
        return self.size()
