"""
Volume domain mapping.

The audio engine works with a base-2 attenuation value where 0 is full
volume and every negative unit halves the amplitude. Clients see an integer
scale starting at 0, two scale units per engine step.
"""

VOLUME_STEP = 0.5
VOLUME_MIN = -12.0
VOLUME_MAX = 0.0
DEFAULT_VOLUME = -4.0

# User scale bounds (inclusive)
SCALE_MIN = 0
SCALE_MAX = 24


def scale_from_engine(volume: float) -> float:
    """Map an engine-domain volume (-12..0) to the user scale (0..24)."""
    return (volume + 12) * 2


def engine_from_scale(scale: float) -> float:
    """Map a user scale value back to the engine domain."""
    return (scale / 2) - 12


def clamp_volume(volume: float) -> float:
    """Clamp an engine-domain volume to [VOLUME_MIN, VOLUME_MAX]."""
    return max(VOLUME_MIN, min(VOLUME_MAX, volume))
