"""
Audio file decoding.

Wraps a soundfile handle as a seekable source of float32 frames that the
output stream pulls from while a track plays.
"""

import logging

import numpy as np
import soundfile as sf

from quaver.errors import UnsupportedFormatError

logger = logging.getLogger(__name__)

# libsndfile major format -> short name used in logs and playlists
SUPPORTED_FORMATS = {
    "MP3": "mp3",
    "FLAC": "flac",
    "WAV": "wav",
    "OGG": "ogg",
}


def detect_format(path: str) -> str:
    """
    Classify an audio file by its content.

    Args:
        path: Path to an existing file

    Returns:
        Short format name (mp3, flac, wav, ogg)

    Raises:
        UnsupportedFormatError: If libsndfile cannot identify the file or
            the format has no decoder here
    """
    try:
        info = sf.info(path)
    except RuntimeError as e:
        # LibsndfileError subclasses RuntimeError
        logger.debug(f"Unable to identify {path}: {e}")
        raise UnsupportedFormatError(f"unsupported format: {path}")

    kind = SUPPORTED_FORMATS.get(info.format)
    if kind is None:
        raise UnsupportedFormatError(f"unsupported format {info.format}: {path}")
    return kind


class DecodedStream:
    """
    Seekable PCM stream over one audio file.

    Not thread-safe by itself; callers serialize access through the audio
    engine lock.
    """

    def __init__(self, sound_file: sf.SoundFile, path: str = ""):
        self._file = sound_file
        self._path = path
        self._closed = False

    @classmethod
    def open(cls, path: str) -> "DecodedStream":
        """Open a decoder for the file at ``path``."""
        try:
            sound_file = sf.SoundFile(path)
        except RuntimeError as e:
            raise UnsupportedFormatError(f"unable to decode {path}: {e}")
        return cls(sound_file, path)

    @property
    def samplerate(self) -> int:
        return self._file.samplerate

    @property
    def channels(self) -> int:
        return self._file.channels

    @property
    def frames(self) -> int:
        """Total length in frames."""
        return self._file.frames

    @property
    def position(self) -> int:
        """Current read position in frames."""
        if self._closed:
            return 0
        return self._file.tell()

    def read(self, frames: int) -> np.ndarray:
        """
        Read up to ``frames`` frames.

        Returns:
            Array of shape (n, channels), n < frames at end of file
        """
        if self._closed:
            return np.zeros((0, self.channels), dtype=np.float32)
        return self._file.read(frames, dtype="float32", always_2d=True)

    def seek(self, frame: int = 0) -> None:
        """Move the read position; 0 restarts the track."""
        if not self._closed:
            self._file.seek(frame)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._file.close()
        except RuntimeError as e:
            logger.warning(f"Error closing {self._path}: {e}")

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f"DecodedStream({self._path!r}, closed={self._closed})"
