"""Turns user intents into outbound command lines."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from ..config import DEBOUNCE_DELAY_S
from ..errors import WriteFailed
from ..models.events import LogCategory
from ..models.state import clamp_brightness
from ..protocol.commands import (
    build_initial_state_request,
    build_set_brightness,
    build_set_power,
    build_status_request,
    encode_command,
)
from ..transport.serial_session import SerialSession
from .debounce import DebounceTimer
from .synchronizer import StateSynchronizer

logger = logging.getLogger(__name__)

LogFn = Callable[[str, LogCategory], Any]


class CommandDispatcher:
    """Fire-and-forget command sender.

    Power commands go out immediately. Brightness changes are debounced:
    only the last value of a burst is sent, once the slider has been quiet
    for ``debounce_delay`` seconds, and only after the device has reported
    its own brightness at least once.
    """

    def __init__(
        self,
        session: SerialSession,
        synchronizer: StateSynchronizer,
        log: LogFn,
        debounce_delay: float = DEBOUNCE_DELAY_S,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self._session = session
        self._sync = synchronizer
        self._log = log
        self._debounce = DebounceTimer(debounce_delay, timer_factory)

    @property
    def brightness_pending(self) -> bool:
        return self._debounce.pending

    def send_command(self, text: str) -> bool:
        """Write one command line. Failures are logged, never raised."""
        if not self._session.connected:
            self._log("No connection available", LogCategory.ERROR)
            return False

        try:
            self._session.write(encode_command(text))
        except WriteFailed as e:
            self._log(f"Send error: {e}", LogCategory.ERROR)
            return False

        self._log(f"Sent: {text}", LogCategory.WARNING)
        return True

    def toggle_power(self) -> bool:
        """Flip the laser and tell the device right away."""
        return self.set_power(not self._sync.state.power)

    def set_power(self, on: bool) -> bool:
        if not self._session.connected:
            self._log("No connection available", LogCategory.ERROR)
            return False
        self._sync.set_local_power(on)
        return self.send_command(build_set_power(on))

    def set_brightness(self, value: int) -> bool:
        """Show ``value`` locally and schedule the PWM command.

        Returns False when the value is already displayed and nothing is
        pending.
        """
        value = clamp_brightness(value)
        if value == self._sync.state.brightness and not self._debounce.pending:
            return False
        self._sync.set_local_brightness(value)
        self._debounce.arm(self._send_brightness, value)
        return True

    def _send_brightness(self, value: int) -> None:
        if not self._sync.brightness_initialized:
            self._log(
                f"Brightness {value}% not sent: waiting for the device to report its state",
                LogCategory.WARNING,
            )
            return
        self.send_command(build_set_brightness(value))

    def request_status(self) -> bool:
        return self.send_command(build_status_request())

    def request_initial_state(self) -> bool:
        return self.send_command(build_initial_state_request())

    def cancel_pending(self) -> None:
        self._debounce.cancel()
