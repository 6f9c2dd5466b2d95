"""Audio output: decoding, device selection and the local engine."""

from .base import AudioEngine, AudioEngineError, OutputControls, StreamFinishedCallback
from .decoder import SUPPORTED_FORMATS, DecodedStream, detect_format
from .device import AudioDeviceInfo, format_device_list, list_audio_devices, resolve_device
from .local import LocalAudioEngine

__all__ = [
    # Engine
    "AudioEngine",
    "AudioEngineError",
    "LocalAudioEngine",
    "OutputControls",
    "StreamFinishedCallback",
    # Decoding
    "DecodedStream",
    "SUPPORTED_FORMATS",
    "detect_format",
    # Devices
    "AudioDeviceInfo",
    "format_device_list",
    "list_audio_devices",
    "resolve_device",
]
