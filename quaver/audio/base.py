"""
Abstract audio engine interface.

Defines the contract the playback engine relies on to render one stream at a
time and to learn when that stream finished on its own.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional, Protocol

from .decoder import DecodedStream

logger = logging.getLogger(__name__)

# Invoked once, on the engine's completion thread, when a stream ends naturally
StreamFinishedCallback = Callable[[], None]


class AudioEngineError(Exception):
    """Raised when the output device rejects a stream."""

    pass


class OutputControls(Protocol):
    """Live flags the engine reads every time it renders a block."""

    paused: bool
    muted: bool
    volume: float


class AudioEngine(ABC):
    """
    Abstract base class for audio output engines.

    ``lock`` is the single coarse lock of the audio subsystem: the render
    path holds it while reading the active stream and the output controls,
    so anything mutating those must hold it too.
    """

    def __init__(self, name: str = "AudioEngine"):
        self.name = name
        self.lock = threading.RLock()
        self._is_initialized: bool = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    def init(self, sample_rate: int) -> None:
        """Prepare the output device. Raises AudioEngineError on failure."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Stop output and release the device."""
        pass

    def is_initialized(self) -> bool:
        return self._is_initialized

    # =========================================================================
    # Playback
    # =========================================================================

    @abstractmethod
    def play(
        self,
        stream: DecodedStream,
        controls: OutputControls,
        on_finished: Optional[StreamFinishedCallback] = None,
    ) -> None:
        """
        Replace the active stream and start rendering it.

        Args:
            stream: Source of frames, positioned where playback should start
            controls: Paused/muted/volume flags read on every render
            on_finished: Called once if the stream runs out of frames
        """
        pass

    @abstractmethod
    def halt(self) -> None:
        """Drop the active stream without invoking its finish callback."""
        pass

    # =========================================================================
    # Event Notification Helpers
    # =========================================================================

    def _notify_finished(self, callback: Optional[StreamFinishedCallback]) -> None:
        """Run a finish callback, isolating the engine from its failures."""
        if callback is None:
            return
        try:
            callback()
        except Exception as e:
            logger.error(f"Stream finished callback error: {e}", exc_info=True)
