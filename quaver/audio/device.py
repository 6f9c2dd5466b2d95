"""
Output device discovery.

Enumerates PortAudio output devices through sounddevice and resolves the
configured ``audio_device`` value to one of them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .base import AudioEngineError

logger = logging.getLogger(__name__)


@dataclass
class AudioDeviceInfo:
    """One output-capable audio device."""

    index: int
    name: str
    channels: int
    default_samplerate: float
    is_default: bool = False

    def describe(self) -> str:
        marker = " (default)" if self.is_default else ""
        return (
            f"[{self.index}] {self.name}{marker} "
            f"- {self.channels}ch, {int(self.default_samplerate)}Hz"
        )


def _import_sounddevice():
    """
    Import sounddevice on first use.

    The module loads the PortAudio shared library at import time, which fails
    on hosts without audio support; deferring it keeps the client side of the
    CLI usable there.
    """
    try:
        import sounddevice as sd

        return sd
    except (ImportError, OSError) as e:
        raise AudioEngineError(f"PortAudio is unavailable: {e}")


def list_audio_devices() -> list[AudioDeviceInfo]:
    """Return every device with at least one output channel."""
    sd = _import_sounddevice()
    default_output = sd.default.device[1]

    devices = []
    for index, dev in enumerate(sd.query_devices()):
        if dev["max_output_channels"] <= 0:
            continue
        devices.append(
            AudioDeviceInfo(
                index=index,
                name=dev["name"],
                channels=dev["max_output_channels"],
                default_samplerate=dev["default_samplerate"],
                is_default=index == default_output,
            )
        )
    return devices


def resolve_device(selector: str) -> AudioDeviceInfo:
    """
    Pick the device named by ``selector``.

    Args:
        selector: "default", a device index, an exact device name or a
            unique-enough substring of one (case-insensitive)

    Raises:
        AudioEngineError: If nothing matches
    """
    devices = list_audio_devices()
    if not devices:
        raise AudioEngineError("No audio output devices found")

    wanted = selector.strip().lower()

    if wanted == "default":
        for dev in devices:
            if dev.is_default:
                return dev
        logger.warning(f"No default output device, using {devices[0].name}")
        return devices[0]

    if wanted.isdigit():
        for dev in devices:
            if dev.index == int(wanted):
                return dev
        raise AudioEngineError(
            f"No output device at index {wanted}. Available:\n{format_device_list(devices)}"
        )

    exact = [dev for dev in devices if dev.name.lower() == wanted]
    if exact:
        return exact[0]

    partial = [dev for dev in devices if wanted in dev.name.lower()]
    if len(partial) > 1:
        logger.warning(f"Several devices match '{selector}', using {partial[0].name}")
    if partial:
        return partial[0]

    raise AudioEngineError(
        f"No output device matching '{selector}'. Available:\n{format_device_list(devices)}"
    )


def format_device_list(devices: Optional[list[AudioDeviceInfo]] = None) -> str:
    """Render devices one per line for the terminal."""
    if devices is None:
        devices = list_audio_devices()
    return "\n".join(f"  {dev.describe()}" for dev in devices)
