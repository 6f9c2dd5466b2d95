"""Shared fixtures: a fake audio engine and generated audio files."""

import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Iterator, Optional
from unittest.mock import MagicMock

import numpy as np
import pytest
import soundfile as sf

from quaver.audio.base import AudioEngine, AudioEngineError, OutputControls, StreamFinishedCallback
from quaver.audio.decoder import DecodedStream
from quaver.playback.track import Track, TrackMetadata


def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class FakeAudioEngine(AudioEngine):
    """Audio engine that records calls instead of producing sound."""

    def __init__(self) -> None:
        super().__init__("Fake Audio")
        self.sample_rate = 0
        self.played: list[DecodedStream] = []
        self.halts = 0
        self.closed = False
        self.active: Optional[tuple] = None
        self.fail_streams: set[int] = set()

    def init(self, sample_rate: int) -> None:
        self.sample_rate = sample_rate
        self._is_initialized = True

    def close(self) -> None:
        self.halt()
        self.closed = True
        self._is_initialized = False

    def play(
        self,
        stream: DecodedStream,
        controls: OutputControls,
        on_finished: Optional[StreamFinishedCallback] = None,
    ) -> None:
        if id(stream) in self.fail_streams:
            raise AudioEngineError("device rejected stream")
        with self.lock:
            self.active = (stream, controls, on_finished)
            self.played.append(stream)

    def halt(self) -> None:
        with self.lock:
            self.halts += 1
            self.active = None

    @property
    def active_stream(self) -> Optional[DecodedStream]:
        with self.lock:
            return self.active[0] if self.active else None

    def finish(self) -> None:
        """Simulate the active stream running out of frames."""
        with self.lock:
            active = self.active
            self.active = None
        if active is not None:
            self._notify_finished(active[2])


@pytest.fixture
def audio() -> FakeAudioEngine:
    engine = FakeAudioEngine()
    engine.init(44100)
    return engine


@pytest.fixture
def make_wav(tmp_path: Path) -> Callable[..., str]:
    """Factory writing a short sine-wave WAV file and returning its path."""

    def _make(
        name: str = "tone.wav",
        seconds: float = 0.05,
        samplerate: int = 8000,
        channels: int = 1,
        directory: Optional[Path] = None,
    ) -> str:
        folder = directory or tmp_path
        folder.mkdir(parents=True, exist_ok=True)
        frames = int(seconds * samplerate)
        t = np.arange(frames) / samplerate
        tone = 0.5 * np.sin(2 * np.pi * 440 * t)
        data = np.repeat(tone[:, None], channels, axis=1) if channels > 1 else tone
        path = folder / name
        sf.write(str(path), data, samplerate)
        return str(path)

    return _make


@pytest.fixture
def fake_track() -> Callable[[str], Track]:
    """Track loader producing tracks over mock streams, no file needed."""

    def _load(path: str) -> Track:
        return Track(
            path=path,
            stream=MagicMock(spec=DecodedStream),
            metadata=TrackMetadata(file_name=os.path.basename(path), title=os.path.basename(path)),
            format="wav",
        )

    return _load


@pytest.fixture
def short_tmp_dir() -> Iterator[Path]:
    """Temp dir with a short path, since AF_UNIX socket paths are length-limited."""
    path = Path(tempfile.mkdtemp(prefix="qv"))
    yield path
    for child in path.iterdir():
        try:
            child.unlink()
        except OSError:
            pass
    try:
        path.rmdir()
    except OSError:
        pass


def _start_loop(engine) -> threading.Thread:
    thread = threading.Thread(target=engine.play_loop, name="test-play-loop", daemon=True)
    thread.start()
    return thread


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Poll a predicate until it holds or a timeout expires."""
    return _wait_for


@pytest.fixture
def start_loop() -> Callable[..., threading.Thread]:
    """Run an engine's play_loop on a background thread."""
    return _start_loop
