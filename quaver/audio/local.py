"""
Local audio engine.

Renders the active decoded stream to the local output device via PortAudio
and reports natural end of stream on a dedicated completion thread.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .base import AudioEngine, AudioEngineError, OutputControls, StreamFinishedCallback
from .decoder import DecodedStream
from .device import AudioDeviceInfo, resolve_device
from .stream import AudioOutputStream

logger = logging.getLogger(__name__)

GAIN_BASE = 2.0  # engine volume is a base-2 exponent
COMPLETION_JOIN_TIMEOUT = 2.0


@dataclass
class _ActiveStream:
    stream: DecodedStream
    controls: OutputControls
    on_finished: Optional[StreamFinishedCallback]


class LocalAudioEngine(AudioEngine):
    """Local audio output engine using sounddevice/PortAudio."""

    def __init__(
        self,
        device: str = "default",
        buffer_size: int = 2048,
        name: str = "Local Audio",
    ):
        super().__init__(name)
        self._device_config = device
        self._buffer_size = buffer_size

        # Initialized in init()
        self._device_info: Optional[AudioDeviceInfo] = None
        self._output: Optional[AudioOutputStream] = None

        self._active: Optional[_ActiveStream] = None

        # Finish callbacks leave the PortAudio thread through this queue
        self._completions: "queue.Queue[Optional[StreamFinishedCallback]]" = queue.Queue()
        self._completion_thread: Optional[threading.Thread] = None

    def init(self, sample_rate: int) -> None:
        """Resolve the device, open the output and start the completion thread."""
        self._device_info = resolve_device(self._device_config)
        self.name = f"Local: {self._device_info.name}"

        self._output = AudioOutputStream(
            render=self._render,
            device_index=self._device_info.index,
            blocksize=self._buffer_size,
        )
        self._output.open(sample_rate, min(2, self._device_info.channels))

        self._completion_thread = threading.Thread(
            target=self._completion_loop,
            name="quaver-completion",
            daemon=True,
        )
        self._completion_thread.start()
        self._is_initialized = True
        logger.info(
            f"Audio output device: {self._device_info.name} "
            f"({sample_rate} Hz, blocksize={self._buffer_size})"
        )

    def play(
        self,
        stream: DecodedStream,
        controls: OutputControls,
        on_finished: Optional[StreamFinishedCallback] = None,
    ) -> None:
        if self._output is None:
            raise AudioEngineError("Audio engine is not initialized")

        with self.lock:
            self._active = None

        self._output.open(stream.samplerate, stream.channels)
        self._output.start()

        with self.lock:
            self._active = _ActiveStream(stream, controls, on_finished)
        logger.debug(f"Streaming {stream!r} at {stream.samplerate}Hz")

    def halt(self) -> None:
        with self.lock:
            self._active = None

    def close(self) -> None:
        self.halt()
        if self._output is not None:
            self._output.close()
            self._output = None
        if self._completion_thread is not None:
            self._completions.put(None)
            self._completion_thread.join(timeout=COMPLETION_JOIN_TIMEOUT)
            self._completion_thread = None
        self._is_initialized = False

    def _render(self, outdata: np.ndarray, frames: int) -> None:
        """Fill one output block from the active stream (audio thread)."""
        finished: Optional[_ActiveStream] = None

        with self.lock:
            active = self._active
            if active is None or active.controls.paused:
                outdata.fill(0)
                return

            data = active.stream.read(frames)
            count = len(data)
            if active.controls.muted:
                outdata.fill(0)
            else:
                outdata[:count] = data * (GAIN_BASE ** active.controls.volume)
                outdata[count:] = 0

            if count < frames:
                self._active = None
                finished = active

        if finished is not None and finished.on_finished is not None:
            self._completions.put(finished.on_finished)

    def _completion_loop(self) -> None:
        while True:
            callback = self._completions.get()
            if callback is None:
                return
            self._notify_finished(callback)
