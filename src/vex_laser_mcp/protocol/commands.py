"""Outbound command vocabulary and line builders.

Every command is a single ASCII line terminated by ``\\n``. The device
does not acknowledge commands; its next status or heartbeat reflects
the change.
"""

from __future__ import annotations

from enum import Enum

from .framing import DELIMITER, ENCODING


class Command(str, Enum):
    """Command keywords understood by the firmware."""

    GET_INITIAL_STATE = "GET_INITIAL_STATE"
    STATUS = "STATUS"
    LASER_ON = "LASER_ON"
    LASER_OFF = "LASER_OFF"
    SET_LASER_PWM = "SET_LASER_PWM"


def build_command(command: Command, argument: int | str | None = None) -> str:
    """Build the text of a command line, without the terminator."""
    if argument is None:
        return command.value
    return f"{command.value}:{argument}"


def encode_command(text: str) -> bytes:
    """Terminate and encode a command line for the wire."""
    return (text + DELIMITER).encode(ENCODING)


def build_initial_state_request() -> str:
    """Ask the device for its one-time full state dump."""
    return build_command(Command.GET_INITIAL_STATE)


def build_status_request() -> str:
    return build_command(Command.STATUS)


def build_set_power(on: bool) -> str:
    """Build ``LASER_ON`` or ``LASER_OFF``."""
    return build_command(Command.LASER_ON if on else Command.LASER_OFF)


def build_set_brightness(brightness: int) -> str:
    """Build a PWM brightness command.

    Args:
        brightness: Brightness percentage 0-100.
    """
    if isinstance(brightness, bool) or not isinstance(brightness, int):
        raise ValueError(f"Brightness must be an integer, got {brightness!r}")
    if not 0 <= brightness <= 100:
        raise ValueError(f"Brightness must be 0-100, got {brightness}")
    return build_command(Command.SET_LASER_PWM, brightness)
