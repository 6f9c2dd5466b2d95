"""Playback: playlist, tracks, volume mapping and the playback engine."""

from .engine import PlaybackEngine, PlaybackState, PlaybackStatus
from .playlist import Playlist, TrackChannel
from .track import Track, TrackMetadata, open_track, read_metadata
from .volume import (
    DEFAULT_VOLUME,
    SCALE_MAX,
    SCALE_MIN,
    VOLUME_MAX,
    VOLUME_MIN,
    VOLUME_STEP,
    clamp_volume,
    engine_from_scale,
    scale_from_engine,
)

__all__ = [
    # Engine
    "PlaybackEngine",
    "PlaybackState",
    "PlaybackStatus",
    # Playlist
    "Playlist",
    "TrackChannel",
    "Track",
    "TrackMetadata",
    "open_track",
    "read_metadata",
    # Volume
    "DEFAULT_VOLUME",
    "SCALE_MAX",
    "SCALE_MIN",
    "VOLUME_MAX",
    "VOLUME_MIN",
    "VOLUME_STEP",
    "clamp_volume",
    "engine_from_scale",
    "scale_from_engine",
]
