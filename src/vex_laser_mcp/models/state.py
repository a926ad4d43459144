"""Device state model."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from ..config import DEFAULT_BRIGHTNESS, DEFAULT_FIRMWARE, DEFAULT_FREE_HEAP

BRIGHTNESS_MIN = 0
BRIGHTNESS_MAX = 100


def clamp_brightness(value: int) -> int:
    """Clamp a brightness percentage to 0-100."""
    return max(BRIGHTNESS_MIN, min(BRIGHTNESS_MAX, int(value)))


@dataclass
class DeviceState:
    """Host-side view of the laser device.

    ``power`` and ``brightness`` survive a disconnect as last-known
    display values; ``firmware_version`` and ``brightness_initialized``
    do not.
    """

    power: bool = False
    brightness: int = DEFAULT_BRIGHTNESS
    firmware_version: str = DEFAULT_FIRMWARE
    uptime_seconds: int = 0
    free_heap_bytes: int = DEFAULT_FREE_HEAP
    brightness_initialized: bool = False

    def __post_init__(self) -> None:
        self.brightness = clamp_brightness(self.brightness)

    def to_dict(self) -> dict:
        result = asdict(self)
        result["uptime"] = format_uptime(self.uptime_seconds)
        return result


def format_uptime(seconds: int) -> str:
    """Render an uptime as ``1d 2h 3m 4s``, dropping leading zero units."""
    seconds = max(0, int(seconds))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0 or days > 0:
        parts.append(f"{hours}h")
    if minutes > 0 or hours > 0 or days > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)
