"""
Audio output stream wrapper.

Manages a sounddevice OutputStream whose callback asks a render function to
fill each block.
"""

import logging
from typing import Callable, Optional

import numpy as np

from .base import AudioEngineError
from .device import _import_sounddevice

logger = logging.getLogger(__name__)

# Fills outdata (frames x channels, float32) in place
RenderCallback = Callable[[np.ndarray, int], None]


class AudioOutputStream:
    """
    Wraps sounddevice.OutputStream.

    The stream is opened for one sample rate / channel layout and reopened
    when a track needs a different one.
    """

    def __init__(
        self,
        render: RenderCallback,
        device_index: Optional[int] = None,
        blocksize: int = 2048,
    ):
        self._render = render
        self._device_index = device_index
        self._blocksize = blocksize
        self._stream = None  # sd.OutputStream
        self._sample_rate: int = 0
        self._channels: int = 0

    def open(self, sample_rate: int, channels: int = 2) -> None:
        """
        Open the stream, reusing it when the layout already matches.

        Raises:
            AudioEngineError: If PortAudio refuses the configuration
        """
        if self._stream is not None:
            if self._sample_rate == sample_rate and self._channels == channels:
                return
            self.close()

        sd = _import_sounddevice()
        try:
            self._stream = sd.OutputStream(
                device=self._device_index,
                samplerate=sample_rate,
                channels=channels,
                dtype="float32",
                blocksize=self._blocksize,
                callback=self._audio_callback,
            )
        except Exception as e:
            # PortAudioError and invalid-parameter ValueErrors alike
            raise AudioEngineError(f"Cannot open output at {sample_rate}Hz/{channels}ch: {e}")

        self._sample_rate = sample_rate
        self._channels = channels
        logger.debug(
            f"Audio stream opened: {sample_rate}Hz, {channels}ch, blocksize={self._blocksize}"
        )

    def start(self) -> None:
        if self._stream is not None and not self._stream.active:
            self._stream.start()

    def close(self) -> None:
        """Close and release the stream."""
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        except Exception as e:
            logger.warning(f"Error closing audio stream: {e}")
        self._stream = None
        self._sample_rate = 0
        self._channels = 0

    def _audio_callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:
        """PortAudio callback, runs on the audio thread."""
        if status:
            logger.warning(f"Audio callback status: {status}")
        self._render(outdata, frames)
