"""
Playlist entries and their display metadata.
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from typing import Any, Optional

import mutagen

from quaver.audio.decoder import DecodedStream, detect_format
from quaver.errors import NotFoundError

logger = logging.getLogger(__name__)

PLACEHOLDER = "-"

# Offset added to tag values when sizing the --info rule: "Artist | "
_LABEL_WIDTH = 9


@dataclass
class TrackMetadata:
    """Tag values shown by --info; missing tags keep the placeholder."""

    file_name: str = ""
    title: str = PLACEHOLDER
    artist: str = PLACEHOLDER
    album: str = PLACEHOLDER
    genre: str = PLACEHOLDER
    year: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the control channel."""
        return {
            "file_name": self.file_name,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "genre": self.genre,
            "year": self.year,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackMetadata":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def display(self) -> str:
        """Render the block printed by ``quaver --info``."""
        rows = [
            ("Title", self.title),
            ("Artist", self.artist),
            ("Album", self.album),
            ("Genre", self.genre),
        ]
        width = max([len(self.file_name)] + [len(value) + _LABEL_WIDTH for _, value in rows])
        lines = [self.file_name, "-" * width]
        lines += [f"{label:<6} | {value}" for label, value in rows]
        lines.append(f"{'Year':<6} | {self.year}")
        return "\n".join(lines)


def _first_tag(tags: Any, key: str) -> Optional[str]:
    try:
        values = tags[key]
    except (KeyError, ValueError, TypeError):
        return None
    if isinstance(values, (list, tuple)):
        values = values[0] if values else None
    if values is None:
        return None
    text = str(values).strip()
    return text or None


def _parse_year(value: Optional[str]) -> int:
    if not value:
        return 0
    match = re.match(r"\d{4}", value)
    return int(match.group(0)) if match else 0


def read_metadata(path: str) -> TrackMetadata:
    """
    Read display tags from an audio file.

    A file without readable tags still plays, so failures only leave the
    placeholders in place.
    """
    metadata = TrackMetadata(file_name=os.path.basename(path))

    try:
        audio = mutagen.File(path, easy=True)
    except (mutagen.MutagenError, OSError) as e:
        logger.debug(f"Error while retrieving audio file metadata: {e}")
        return metadata

    if audio is None or audio.tags is None:
        logger.debug(f"No tags found in {path}")
        return metadata

    tags = audio.tags
    metadata.title = _first_tag(tags, "title") or PLACEHOLDER
    metadata.artist = _first_tag(tags, "artist") or PLACEHOLDER
    metadata.album = _first_tag(tags, "album") or PLACEHOLDER
    metadata.genre = _first_tag(tags, "genre") or PLACEHOLDER
    metadata.year = _parse_year(_first_tag(tags, "date"))
    return metadata


@dataclass(eq=False)
class Track:
    """
    One playable item.

    The track owns its decoded stream; ``index`` is its slot in the owning
    playlist and stays -1 until the track is queued.
    """

    path: str
    stream: DecodedStream
    metadata: TrackMetadata = field(default_factory=TrackMetadata)
    format: str = ""
    index: int = -1

    @property
    def file_name(self) -> str:
        return self.metadata.file_name or os.path.basename(self.path)

    @property
    def title(self) -> str:
        return self.metadata.title

    def close(self) -> None:
        self.stream.close()


def open_track(path: str) -> Track:
    """
    Materialize a track from a file path.

    Args:
        path: Absolute path of an audio file

    Raises:
        NotFoundError: If nothing exists at ``path``
        UnsupportedFormatError: If the file cannot be decoded
    """
    if not os.path.isfile(path):
        raise NotFoundError(f"no such file: {path}")

    kind = detect_format(path)
    metadata = read_metadata(path)
    stream = DecodedStream.open(path)
    logger.debug(f"Opened {kind} track {path}")
    return Track(path=path, stream=stream, metadata=metadata, format=kind)
