"""Merges device reports and local intents into the canonical DeviceState.

Precedence:

- power: the device is the source of truth; any reported value wins.
- brightness: the first report of a connection is taken as-is and marks
  brightness initialized. After that, ``status``/``heartbeat`` pushes only
  win when they differ from the displayed value by more than the
  threshold, so a lagging push does not yank a slider the user is
  dragging. Initial-state dumps, status echoes and boot banners always win.
- firmware, uptime, free heap: last writer wins (uptime never moves
  backwards within a connection, until a boot banner or initial-state dump
  shows the board restarted).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from ..config import BRIGHTNESS_THRESHOLD, DEFAULT_FIRMWARE
from ..models.state import DeviceState, clamp_brightness
from ..protocol.parser import PUSH_ORIGINS, StateUpdate, UpdateOrigin

logger = logging.getLogger(__name__)

# The board may reboot behind a USB bridge that keeps the port open.
BOOT_ORIGINS = frozenset({UpdateOrigin.INIT_BANNER, UpdateOrigin.INITIAL_STATE})


class StateSynchronizer:
    """Sole owner and mutator of :class:`DeviceState`."""

    def __init__(
        self,
        threshold: int = BRIGHTNESS_THRESHOLD,
        initial: DeviceState | None = None,
    ) -> None:
        self._threshold = threshold
        self._state = initial if initial is not None else DeviceState()
        self._uptime_seen = False
        self._lock = threading.RLock()

    @property
    def state(self) -> DeviceState:
        """Snapshot copy of the current state."""
        with self._lock:
            return replace(self._state)

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def brightness_initialized(self) -> bool:
        return self._state.brightness_initialized

    def apply(self, update: StateUpdate) -> list[str]:
        """Merge a decoded update.

        Returns:
            Names of the fields whose value changed.
        """
        changed: list[str] = []
        with self._lock:
            state = self._state

            if update.power is not None and update.power != state.power:
                state.power = update.power
                changed.append("power")

            if update.brightness is not None:
                changed.extend(self._apply_brightness(update))

            if update.firmware_version is not None and update.firmware_version != state.firmware_version:
                state.firmware_version = update.firmware_version
                changed.append("firmware_version")

            if update.origin in BOOT_ORIGINS:
                self._uptime_seen = False

            if update.uptime_seconds is not None:
                if self._uptime_seen and update.uptime_seconds < state.uptime_seconds:
                    logger.debug(
                        "Ignoring uptime %ds older than %ds",
                        update.uptime_seconds,
                        state.uptime_seconds,
                    )
                else:
                    self._uptime_seen = True
                    if update.uptime_seconds != state.uptime_seconds:
                        state.uptime_seconds = update.uptime_seconds
                        changed.append("uptime_seconds")

            if update.free_heap_bytes is not None and update.free_heap_bytes != state.free_heap_bytes:
                state.free_heap_bytes = update.free_heap_bytes
                changed.append("free_heap_bytes")

        return changed

    def _apply_brightness(self, update: StateUpdate) -> list[str]:
        state = self._state
        value = clamp_brightness(update.brightness)
        changed = []

        if not state.brightness_initialized:
            state.brightness_initialized = True
            changed.append("brightness_initialized")
        elif update.origin in PUSH_ORIGINS and abs(value - state.brightness) <= self._threshold:
            return changed

        if value != state.brightness:
            state.brightness = value
            changed.append("brightness")
        return changed

    def set_local_power(self, on: bool) -> bool:
        """Record a user-initiated power change. Returns True if it changed."""
        with self._lock:
            if self._state.power == on:
                return False
            self._state.power = on
            return True

    def set_local_brightness(self, value: int) -> int:
        """Record a user-initiated brightness change; returns the clamped value."""
        with self._lock:
            self._state.brightness = clamp_brightness(value)
            return self._state.brightness

    def on_connect(self) -> None:
        with self._lock:
            self._uptime_seen = False

    def on_disconnect(self) -> None:
        """Forget per-connection knowledge; keep power/brightness for display."""
        with self._lock:
            self._state.brightness_initialized = False
            self._state.firmware_version = DEFAULT_FIRMWARE
            self._uptime_seen = False
