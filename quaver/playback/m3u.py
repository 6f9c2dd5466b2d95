"""
Reading and writing the M3U subset used for saved playlists.

Only the ``#EXTM3U`` header and ``#EXTINF`` entries are understood; any other
line is ignored.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Iterable

from quaver.errors import MalformedPlaylistError, NotFoundError, QuaverError

from .track import Track, open_track

logger = logging.getLogger(__name__)

HEADER = "#EXTM3U"
EXTINF = "#EXTINF:"
PLAYLIST_SUFFIXES = (".m3u", ".m3u8")


@dataclass
class M3UEntry:
    """One ``#EXTINF`` record and the path line following it."""

    path: str
    title: str = ""


def is_playlist_file(path: str) -> bool:
    return path.lower().endswith(PLAYLIST_SUFFIXES)


def _extinf_title(line: str) -> str:
    return line[len(EXTINF):].partition(",")[2].strip()


def parse(text: str, base_dir: str = "") -> list[M3UEntry]:
    """
    Parse M3U text into entries.

    Args:
        text: Playlist file contents
        base_dir: Directory relative entry paths are resolved against

    Raises:
        MalformedPlaylistError: If the header is missing or the text is too
            short to hold an entry
    """
    lines = [line.rstrip("\r") for line in text.split("\n")]
    if len(lines) < 2:
        raise MalformedPlaylistError("M3U file is empty or malformed")
    if lines[0].lstrip("\ufeff") != HEADER:
        raise MalformedPlaylistError("missing m3u file header")

    entries: list[M3UEntry] = []
    i = 1
    while i < len(lines):
        line = lines[i]
        i += 1
        if not line.startswith(EXTINF):
            continue
        if i >= len(lines):
            break

        title = _extinf_title(line)
        path = lines[i].strip()
        i += 1
        if not path:
            continue
        if base_dir and not os.path.isabs(path):
            path = os.path.join(base_dir, path)
        entries.append(M3UEntry(path=os.path.normpath(path), title=title))
    return entries


def load(path: str, loader: Callable[[str], Track] = open_track) -> list[Track]:
    """
    Materialize every playable entry of an M3U file.

    Entries pointing at missing files, or whose file fails to open, are
    logged and skipped; the rest are returned in file order.

    Raises:
        NotFoundError: If the playlist file does not exist
        MalformedPlaylistError: If the file is not a valid UTF-8 M3U playlist
        OSError: If the playlist file itself cannot be read
    """
    if not os.path.isfile(path):
        raise NotFoundError(f"no such file: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise MalformedPlaylistError(f"M3U file is not valid UTF-8: {e}")

    entries = parse(text, base_dir=os.path.dirname(os.path.abspath(path)))

    tracks: list[Track] = []
    for entry in entries:
        if not os.path.exists(entry.path):
            logger.warning(f"Skipping missing playlist entry: {entry.path}")
            continue
        try:
            tracks.append(loader(entry.path))
        except QuaverError as e:
            logger.error(f"Failed to load song {entry.path}: {e}")

    logger.debug(f"Loaded {len(tracks)}/{len(entries)} entries from {path}")
    return tracks


def dumps(tracks: Iterable[Track]) -> str:
    lines = [HEADER]
    for track in tracks:
        lines.append(f"{EXTINF},{track.title}")
        lines.append(track.path)
    return "\n".join(lines) + "\n"


def save(tracks: Iterable[Track], path: str) -> None:
    """Write ``tracks`` to ``path`` in M3U format."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps(tracks))
    logger.info(f"Playlist saved to {path}")
