"""Tests for the local audio engine render path."""

import threading
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import soundfile as sf

from quaver.audio.base import AudioEngineError
from quaver.audio.decoder import DecodedStream
from quaver.audio.device import AudioDeviceInfo
from quaver.audio.local import LocalAudioEngine

BLOCK = 256
OUTPUT_DEVICE = AudioDeviceInfo(0, "Built-in Output", 2, 44100.0, True)


def _controls(paused: bool = False, muted: bool = False, volume: float = 0.0):
    return SimpleNamespace(paused=paused, muted=muted, volume=volume)


@pytest.fixture
def sd() -> MagicMock:
    return MagicMock()


@pytest.fixture
def engine(sd):
    engine = LocalAudioEngine(device="default", buffer_size=BLOCK)
    with patch("quaver.audio.local.resolve_device", return_value=OUTPUT_DEVICE), patch(
        "quaver.audio.stream._import_sounddevice", return_value=sd
    ):
        engine.init(44100)
        yield engine
        engine.close()


@pytest.fixture
def wav(make_wav) -> str:
    # 800 frames
    return make_wav(seconds=0.1, samplerate=8000, channels=1)


def _expected(path: str, frames: int) -> np.ndarray:
    data, _ = sf.read(path, frames=frames, dtype="float32", always_2d=True)
    return data


def _block() -> np.ndarray:
    return np.full((BLOCK, 1), 9.0, dtype=np.float32)


class TestInit:
    """Test engine initialization."""

    def test_init_opens_output(self, engine, sd) -> None:
        assert engine.is_initialized()
        assert "Built-in Output" in engine.name
        kwargs = sd.OutputStream.call_args.kwargs
        assert kwargs["samplerate"] == 44100
        assert kwargs["channels"] == 2
        assert kwargs["blocksize"] == BLOCK

    def test_play_before_init(self, wav) -> None:
        engine = LocalAudioEngine()
        stream = DecodedStream.open(wav)
        try:
            with pytest.raises(AudioEngineError):
                engine.play(stream, _controls())
        finally:
            stream.close()

    def test_play_reopens_for_stream_layout(self, engine, sd, wav) -> None:
        stream = DecodedStream.open(wav)
        engine.play(stream, _controls())

        kwargs = sd.OutputStream.call_args.kwargs
        assert kwargs["samplerate"] == 8000
        assert kwargs["channels"] == 1
        stream.close()

    def test_output_error_is_reported(self, engine, sd, wav) -> None:
        sd.OutputStream.side_effect = RuntimeError("device busy")
        stream = DecodedStream.open(wav)
        with pytest.raises(AudioEngineError, match="device busy"):
            engine.play(stream, _controls())
        stream.close()


class TestRender:
    """Test LocalAudioEngine._render()."""

    def test_silence_without_stream(self, engine) -> None:
        out = _block()
        engine._render(out, BLOCK)
        assert not out.any()

    def test_full_volume(self, engine, wav) -> None:
        stream = DecodedStream.open(wav)
        engine.play(stream, _controls(volume=0.0))

        out = _block()
        engine._render(out, BLOCK)

        np.testing.assert_allclose(out, _expected(wav, BLOCK))
        stream.close()

    def test_gain_is_base_two(self, engine, wav) -> None:
        stream = DecodedStream.open(wav)
        engine.play(stream, _controls(volume=-1.0))

        out = _block()
        engine._render(out, BLOCK)

        np.testing.assert_allclose(out, _expected(wav, BLOCK) * 0.5, rtol=1e-6)
        stream.close()

    def test_paused_holds_position(self, engine, wav) -> None:
        stream = DecodedStream.open(wav)
        engine.play(stream, _controls(paused=True))

        out = _block()
        engine._render(out, BLOCK)

        assert not out.any()
        assert stream.position == 0
        stream.close()

    def test_muted_advances_silently(self, engine, wav) -> None:
        stream = DecodedStream.open(wav)
        engine.play(stream, _controls(muted=True))

        out = _block()
        engine._render(out, BLOCK)

        assert not out.any()
        assert stream.position == BLOCK
        stream.close()

    def test_controls_are_read_live(self, engine, wav) -> None:
        stream = DecodedStream.open(wav)
        controls = _controls()
        engine.play(stream, controls)

        controls.paused = True
        out = _block()
        engine._render(out, BLOCK)

        assert not out.any()
        stream.close()

    def test_end_of_stream_notifies_once(self, engine, wav) -> None:
        finished = threading.Event()
        calls = []

        def on_finished() -> None:
            calls.append(1)
            finished.set()

        stream = DecodedStream.open(wav)
        engine.play(stream, _controls(), on_finished=on_finished)

        for _ in range(3):
            engine._render(_block(), BLOCK)
        assert not finished.is_set()

        out = _block()
        engine._render(out, BLOCK)
        assert finished.wait(2.0)
        # 800 - 3 * 256 frames were left
        assert not out[32:].any()

        engine._render(_block(), BLOCK)
        assert calls == [1]
        stream.close()

    def test_halt_drops_stream_without_callback(self, engine, wav) -> None:
        on_finished = MagicMock()
        stream = DecodedStream.open(wav)
        engine.play(stream, _controls(), on_finished=on_finished)

        engine.halt()
        out = _block()
        engine._render(out, BLOCK)

        assert not out.any()
        on_finished.assert_not_called()
        stream.close()

    def test_callback_errors_are_isolated(self, engine, wav) -> None:
        done = threading.Event()
        stream = DecodedStream.open(wav)
        engine.play(stream, _controls(), on_finished=MagicMock(side_effect=RuntimeError("boom")))
        for _ in range(4):
            engine._render(_block(), BLOCK)

        # The completion thread survives and serves the next stream
        other = DecodedStream.open(wav)
        engine.play(other, _controls(), on_finished=done.set)
        for _ in range(4):
            engine._render(_block(), BLOCK)
        assert done.wait(2.0)
        stream.close()
        other.close()


class TestClose:
    """Test LocalAudioEngine.close()."""

    def test_close_stops_completion_thread(self, sd) -> None:
        engine = LocalAudioEngine()
        with patch("quaver.audio.local.resolve_device", return_value=OUTPUT_DEVICE), patch(
            "quaver.audio.stream._import_sounddevice", return_value=sd
        ):
            engine.init(44100)
            thread = engine._completion_thread
            engine.close()

        assert not engine.is_initialized()
        assert not thread.is_alive()
        sd.OutputStream.return_value.close.assert_called()
