"""Decoding of inbound device lines.

The firmware speaks two dialects on the same stream:

- JSON objects tagged by ``type`` (``initial_state``, ``status``,
  ``heartbeat``), e.g.
  ``{"type":"status","laser_state":true,"laser_brightness":40}``
- legacy human-readable lines printed by older firmware and by the boot
  banner, e.g. ``Loaded brightness: 40%``.

:func:`decode_line` tries JSON first. A line that is not JSON is not an
error; it simply goes through the ordered legacy matchers, all of which
run on every line.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ..errors import DecodeFailed


class MessageKind(str, Enum):
    """Recognized structured message types."""

    INITIAL_STATE = "initial_state"
    STATUS = "status"
    HEARTBEAT = "heartbeat"
    UNRECOGNIZED = "unrecognized"


class UpdateOrigin(str, Enum):
    """Where a state update came from; drives brightness precedence."""

    INITIAL_STATE = "initial_state"
    STATUS = "status"
    HEARTBEAT = "heartbeat"
    STATUS_ECHO = "status_echo"
    LOADED_BRIGHTNESS = "loaded_brightness"
    INIT_BANNER = "init_banner"
    FIRMWARE_BANNER = "firmware_banner"


# Periodic pushes may lag behind a slider the user is dragging.
PUSH_ORIGINS = frozenset({UpdateOrigin.STATUS, UpdateOrigin.HEARTBEAT})

_KIND_ORIGINS = {
    MessageKind.INITIAL_STATE: UpdateOrigin.INITIAL_STATE,
    MessageKind.STATUS: UpdateOrigin.STATUS,
    MessageKind.HEARTBEAT: UpdateOrigin.HEARTBEAT,
}


@dataclass
class StateUpdate:
    """Fields reported by the device. ``None`` means unchanged."""

    origin: UpdateOrigin
    power: bool | None = None
    brightness: int | None = None
    firmware_version: str | None = None
    uptime_seconds: int | None = None
    free_heap_bytes: int | None = None

    @property
    def empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.power,
                self.brightness,
                self.firmware_version,
                self.uptime_seconds,
                self.free_heap_bytes,
            )
        )


@dataclass
class DecodedLine:
    """Result of decoding one line."""

    line: str
    structured: bool
    kind: MessageKind | None = None
    payload: Any = None
    updates: list[StateUpdate] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def __repr__(self) -> str:
        if self.structured:
            return f"DecodedLine(kind={self.kind.value}, updates={len(self.updates)})"
        return f"DecodedLine(legacy, updates={len(self.updates)}, notes={self.notes})"


def decode_line(line: str) -> DecodedLine:
    """Decode a single framed line.

    Raises:
        DecodeFailed: A structured message of a known type carried a field
            with the wrong type. The line should be skipped.
    """
    try:
        payload = json.loads(line)
    except ValueError:
        return decode_legacy(line)
    return decode_structured(line, payload)


# ─── STRUCTURED ───────────────────────────────────────────────────────

def classify(payload: Any) -> MessageKind:
    """Map a parsed JSON value to its message kind."""
    if not isinstance(payload, dict):
        return MessageKind.UNRECOGNIZED
    try:
        return MessageKind(payload.get("type"))
    except ValueError:
        return MessageKind.UNRECOGNIZED


def decode_structured(line: str, payload: Any) -> DecodedLine:
    kind = classify(payload)
    decoded = DecodedLine(line=line, structured=True, kind=kind, payload=payload)
    if kind is MessageKind.UNRECOGNIZED:
        return decoded

    update = StateUpdate(origin=_KIND_ORIGINS[kind])
    if "laser_state" in payload:
        update.power = _expect_bool(payload, "laser_state", line)
    if "laser_brightness" in payload:
        update.brightness = _expect_int(payload, "laser_brightness", line)
    if "version" in payload:
        update.firmware_version = _expect_str(payload, "version", line)
    if "uptime_ms" in payload:
        update.uptime_seconds = _expect_int(payload, "uptime_ms", line, minimum=0) // 1000
    if "free_heap_bytes" in payload:
        update.free_heap_bytes = _expect_int(payload, "free_heap_bytes", line, minimum=0)

    if not update.empty:
        decoded.updates.append(update)
    return decoded


def _expect_bool(payload: dict, key: str, line: str) -> bool:
    value = payload[key]
    if not isinstance(value, bool):
        raise DecodeFailed(f"'{key}' must be a boolean, got {value!r}", line)
    return value


def _expect_int(payload: dict, key: str, line: str, minimum: int | None = None) -> int:
    value = payload[key]
    if isinstance(value, bool):
        raise DecodeFailed(f"'{key}' must be an integer, got {value!r}", line)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise DecodeFailed(f"'{key}' must be an integer, got {value!r}", line)
    if minimum is not None and value < minimum:
        raise DecodeFailed(f"'{key}' must be >= {minimum}, got {value}", line)
    return value


def _expect_str(payload: dict, key: str, line: str) -> str:
    value = payload[key]
    if not isinstance(value, str):
        raise DecodeFailed(f"'{key}' must be a string, got {value!r}", line)
    return value


# ─── LEGACY TEXT ──────────────────────────────────────────────────────

FIRMWARE_MARKERS = ("firmware version:", "esp32-s3")
FIRMWARE_TOKEN_RE = re.compile(r"\bv(\d+\.\d+(?:\.\d+)?)\b", re.IGNORECASE)
VERSION_RE = re.compile(r"v?(\d+\.\d+(?:\.\d+)?)", re.IGNORECASE)

LOADED_BRIGHTNESS_RE = re.compile(r"Loaded brightness:\s*(\d{1,3})\s*%", re.IGNORECASE)

INIT_BANNER_RE = re.compile(r"Device initiali[sz]ed", re.IGNORECASE)
BANNER_BRIGHTNESS_RE = re.compile(r"\bBrightness:\s*(\d{1,3})\s*%", re.IGNORECASE)
BANNER_LASER_RE = re.compile(r"\bLaser:\s*(ON|OFF)\b", re.IGNORECASE)

CONNECTION_BANNER_RE = re.compile(
    r"\b(connection detected|host connected|serial connected)\b", re.IGNORECASE
)

ECHO_STATE_RE = re.compile(r"Laser State:\s*(ON|OFF)\b", re.IGNORECASE)
ECHO_BRIGHTNESS_RE = re.compile(r"Laser Brightness:\s*(\d{1,3})\s*%", re.IGNORECASE)


def _on_off(token: str) -> bool:
    return token.upper() == "ON"


def match_firmware(line: str, decoded: DecodedLine) -> None:
    """Firmware banner or any ``vX.Y`` token."""
    lowered = line.lower()
    if any(marker in lowered for marker in FIRMWARE_MARKERS):
        match = VERSION_RE.search(line)
    else:
        match = FIRMWARE_TOKEN_RE.search(line)
    if match:
        decoded.updates.append(
            StateUpdate(origin=UpdateOrigin.FIRMWARE_BANNER, firmware_version=match.group(1))
        )


def match_loaded_brightness(line: str, decoded: DecodedLine) -> None:
    """``Loaded brightness: NN%``, printed when settings load from flash."""
    match = LOADED_BRIGHTNESS_RE.search(line)
    if match:
        decoded.updates.append(
            StateUpdate(origin=UpdateOrigin.LOADED_BRIGHTNESS, brightness=int(match.group(1)))
        )


def match_init_banner(line: str, decoded: DecodedLine) -> None:
    """``Device initialized ... Brightness: NN% ... Laser: ON|OFF``."""
    if not INIT_BANNER_RE.search(line):
        return
    brightness = BANNER_BRIGHTNESS_RE.search(line)
    if not brightness:
        return
    update = StateUpdate(origin=UpdateOrigin.INIT_BANNER, brightness=int(brightness.group(1)))
    laser = BANNER_LASER_RE.search(line)
    if laser:
        update.power = _on_off(laser.group(1))
    decoded.updates.append(update)


def match_connection_banner(line: str, decoded: DecodedLine) -> None:
    match = CONNECTION_BANNER_RE.search(line)
    if match:
        decoded.notes.append(f"Device reports {match.group(1).lower()}")


def match_status_echo(line: str, decoded: DecodedLine) -> None:
    """Reply to a manual ``STATUS``: ``Laser State: ON`` + ``Laser Brightness: NN%``."""
    state = ECHO_STATE_RE.search(line)
    brightness = ECHO_BRIGHTNESS_RE.search(line)
    if state and brightness:
        decoded.updates.append(
            StateUpdate(
                origin=UpdateOrigin.STATUS_ECHO,
                power=_on_off(state.group(1)),
                brightness=int(brightness.group(1)),
            )
        )


LEGACY_MATCHERS: tuple[Callable[[str, DecodedLine], None], ...] = (
    match_firmware,
    match_loaded_brightness,
    match_init_banner,
    match_connection_banner,
    match_status_echo,
)


def decode_legacy(line: str) -> DecodedLine:
    """Run every legacy matcher over the line, in order."""
    decoded = DecodedLine(line=line, structured=False)
    for matcher in LEGACY_MATCHERS:
        matcher(line, decoded)
    return decoded
