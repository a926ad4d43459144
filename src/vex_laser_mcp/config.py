"""Tunable constants and runtime configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ─── WIRE ─────────────────────────────────────────────────────────────
BAUD_RATE = 115200
READ_POLL_TIMEOUT_S = 0.1
READ_CHUNK_SIZE = 256
WRITE_TIMEOUT_S = 1.0

# USB bridge chips found on the controller boards
ESP32_PORT_KEYWORDS = (
    "Espressif",
    "CP210",
    "CH340",
    "CH910",
    "USB JTAG",
    "Silicon Labs",
)

# ─── ENGINE ───────────────────────────────────────────────────────────
LOG_CAPACITY = 100
BRIGHTNESS_THRESHOLD = 2
DEBOUNCE_DELAY_S = 0.3
INITIAL_REQUEST_DELAY_S = 1.0
READER_JOIN_TIMEOUT_S = 2.0
DEFAULT_FIRMWARE = "Unknown"
DEFAULT_BRIGHTNESS = 50
DEFAULT_FREE_HEAP = 45600


@dataclass
class ControllerConfig:
    """Runtime knobs for a :class:`~vex_laser_mcp.engine.controller.LaserController`."""

    port: str | None = None
    debounce_delay_s: float = DEBOUNCE_DELAY_S
    brightness_threshold: int = BRIGHTNESS_THRESHOLD
    initial_request_delay_s: float = INITIAL_REQUEST_DELAY_S
    log_capacity: int = LOG_CAPACITY
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ControllerConfig:
        """Build a config from ``VEX_LASER_*`` environment variables.

        Unparseable numbers are ignored with a warning and the default kept.
        """
        env = os.environ if environ is None else environ
        config = cls()

        port = env.get("VEX_LASER_PORT", "").strip()
        if port:
            config.port = port

        debounce_ms = _env_int(env, "VEX_LASER_DEBOUNCE_MS")
        if debounce_ms is not None:
            config.debounce_delay_s = max(0, debounce_ms) / 1000.0

        threshold = _env_int(env, "VEX_LASER_THRESHOLD")
        if threshold is not None:
            config.brightness_threshold = max(0, threshold)

        level = env.get("VEX_LASER_LOG_LEVEL", "").strip().upper()
        if level:
            config.log_level = level

        return config


def _env_int(env, name: str) -> int | None:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return None
