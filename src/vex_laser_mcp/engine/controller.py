"""The controller object the presentation layer talks to.

It owns the serial session, the read loop, the state synchronizer, the
command dispatcher and the console log, and notifies subscribers when
any of them change.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable

from ..config import READ_POLL_TIMEOUT_S, READER_JOIN_TIMEOUT_S, ControllerConfig
from ..errors import DecodeFailed, LaserControllerError, ReadFailed, UnsupportedTransport
from ..models.events import EventLog, LogCategory, LogEntry
from ..models.state import DeviceState
from ..protocol.framing import LineFramer, iter_frames
from ..protocol.parser import decode_line
from ..transport.serial_session import ConnectionState, PortSelector, SerialSession
from .dispatcher import CommandDispatcher
from .synchronizer import StateSynchronizer

logger = logging.getLogger(__name__)

Listener = Callable[[str], Any]

TOPIC_STATE = "state"
TOPIC_CONNECTION = "connection"
TOPIC_LOG = "log"

_LOG_LEVELS = {
    LogCategory.ERROR: logging.ERROR,
    LogCategory.WARNING: logging.WARNING,
    LogCategory.RAW: logging.DEBUG,
}


class LaserController:
    """Single-device controller.

    Usage::

        controller = LaserController()
        controller.connect("/dev/ttyACM0")
        controller.toggle_power()
        controller.set_brightness(40)
        controller.disconnect()
    """

    def __init__(
        self,
        config: ControllerConfig | None = None,
        session: SerialSession | None = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self._config = config if config is not None else ControllerConfig()
        self._session = session if session is not None else SerialSession()
        self._timer_factory = timer_factory
        self._framer = LineFramer()
        self._sync = StateSynchronizer(threshold=self._config.brightness_threshold)
        self._events = EventLog(self._config.log_capacity)
        self._dispatcher = CommandDispatcher(
            self._session,
            self._sync,
            self.log,
            debounce_delay=self._config.debounce_delay_s,
            timer_factory=timer_factory,
        )
        self._lifecycle = threading.Lock()
        self._reader: threading.Thread | None = None
        self._stopping_reader: threading.Thread | None = None
        self._initial_request = None
        self._listeners: list[Listener] = []

        self.log("Laser Controller v1.0 Ready", LogCategory.SUCCESS)
        self.log("Connect your Laser device to start communication...", LogCategory.INFO)

    # ─── ACCESSORS ────────────────────────────────────────────────────

    @property
    def state(self) -> DeviceState:
        return self._sync.state

    @property
    def connection_state(self) -> ConnectionState:
        return self._session.state

    @property
    def connected(self) -> bool:
        return self._session.connected

    @property
    def port_name(self) -> str:
        return self._session.port_name

    def log_entries(self) -> list[LogEntry]:
        return self._events.entries()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(topic)`` on every change; returns an unsubscribe function.

        ``topic`` is ``"state"``, ``"connection"`` or ``"log"``.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, topic: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(topic)
            except Exception:
                logger.exception("Listener %r failed on %s", listener, topic)

    def log(self, message: str, category: LogCategory = LogCategory.INFO) -> LogEntry:
        """Append to the console log and mirror it to the module logger."""
        entry = self._events.append(message, category)
        logger.log(_LOG_LEVELS.get(entry.category, logging.INFO), "%s", message)
        self._notify(TOPIC_LOG)
        return entry

    # ─── LIFECYCLE ────────────────────────────────────────────────────

    def connect(self, selector: PortSelector = None) -> bool:
        """Open the device and start the read loop.

        Rejected while another connect/disconnect is in flight or when
        already connected. Failures are logged, not raised.
        """
        if not self._lifecycle.acquire(blocking=False):
            self.log("Connection change already in progress", LogCategory.WARNING)
            return False
        try:
            if self._session.state is not ConnectionState.DISCONNECTED:
                self.log("Already connected", LogCategory.WARNING)
                return False

            stopping = self._stopping_reader
            if stopping is not None:
                if stopping.is_alive():
                    self.log("Previous reader is still stopping, try again", LogCategory.WARNING)
                    return False
                self._stopping_reader = None

            if selector is None:
                selector = self._config.port
            self.log("Requesting serial port access...", LogCategory.INFO)
            try:
                port_name = self._session.open(selector)
            except UnsupportedTransport as e:
                self.log(f"Serial transport not supported: {e}", LogCategory.ERROR)
                return False
            except LaserControllerError as e:
                self.log(f"Connection failed: {e}", LogCategory.ERROR)
                return False

            self._framer.reset()
            self._sync.on_connect()
            self._reader = threading.Thread(
                target=self._read_loop,
                name=f"laser-reader-{port_name}",
                daemon=True,
            )
            self._reader.start()
            self._schedule_initial_request()

            self.log(f"Successfully connected to laser device on {port_name}!", LogCategory.SUCCESS)
            self._notify(TOPIC_CONNECTION)
            return True
        finally:
            self._lifecycle.release()

    def disconnect(self) -> bool:
        """Tear the connection down. Always ends disconnected.

        Returns False if there was nothing to do or another lifecycle
        operation is in flight.
        """
        if not self._lifecycle.acquire(blocking=False):
            self.log("Connection change already in progress", LogCategory.WARNING)
            return False
        try:
            if self._session.state is ConnectionState.DISCONNECTED and self._reader is None:
                return False
            self._teardown()
            return True
        finally:
            self._lifecycle.release()

    def _teardown(self) -> None:
        if self._initial_request is not None:
            self._initial_request.cancel()
            self._initial_request = None
        self._dispatcher.cancel_pending()

        self._session.close()

        reader, self._reader = self._reader, None
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=READER_JOIN_TIMEOUT_S)
            if reader.is_alive():
                logger.warning("Reader thread did not stop within %.1fs", READER_JOIN_TIMEOUT_S)
                self._stopping_reader = reader

        self._framer.reset()
        self._sync.on_disconnect()
        self.log("Serial connection closed", LogCategory.INFO)
        self._notify(TOPIC_CONNECTION)
        self._notify(TOPIC_STATE)

    def _schedule_initial_request(self) -> None:
        delay = self._config.initial_request_delay_s
        if delay <= 0:
            self._send_initial_request()
            return
        timer = self._timer_factory(delay, self._send_initial_request)
        timer.daemon = True
        self._initial_request = timer
        timer.start()

    def _send_initial_request(self) -> None:
        self._initial_request = None
        if self._session.connected:
            self._dispatcher.request_initial_state()

    # ─── READ LOOP ────────────────────────────────────────────────────

    def _read_chunk(self) -> bytes | None:
        while True:
            try:
                return self._session.read()
            except ReadFailed as e:
                if e.device_lost:
                    raise
                self.log(f"Reading error: {e}", LogCategory.ERROR)
                time.sleep(READ_POLL_TIMEOUT_S)

    def _read_loop(self) -> None:
        """Run until the session closes. pyserial reports a vanished device as a read error."""
        try:
            for line in iter_frames(self._read_chunk, self._framer):
                self.handle_line(line)
        except ReadFailed as e:
            if self._session.closing:
                return
            logger.warning("Lost device: %s", e)
            self.log("Device disconnected unexpectedly", LogCategory.WARNING)
            self._auto_disconnect()

    def _auto_disconnect(self) -> None:
        # Waits out a connect() that is still finishing; gives up as soon as
        # a user disconnect has started closing the session.
        while not self._session.closing:
            if self._lifecycle.acquire(timeout=READ_POLL_TIMEOUT_S):
                try:
                    if not self._session.closing:
                        self._teardown()
                finally:
                    self._lifecycle.release()
                return

    def handle_line(self, line: str) -> None:
        """Decode one framed line and merge it into the device state."""
        try:
            decoded = decode_line(line)
        except DecodeFailed as e:
            self.log(f"Skipped malformed message: {e}", LogCategory.WARNING)
            return

        if decoded.structured:
            self.log(json.dumps(decoded.payload, indent=2), LogCategory.RAW)
        else:
            self.log(line, LogCategory.SUCCESS)
        for note in decoded.notes:
            self.log(note, LogCategory.INFO)

        changed: list[str] = []
        for update in decoded.updates:
            changed.extend(self._sync.apply(update))
        if changed:
            logger.debug("State changed: %s", ", ".join(changed))
            self._notify(TOPIC_STATE)

    # ─── USER INTENTS ─────────────────────────────────────────────────

    def toggle_power(self) -> bool:
        sent = self._dispatcher.toggle_power()
        self._notify(TOPIC_STATE)
        return sent

    def set_power(self, on: bool) -> bool:
        sent = self._dispatcher.set_power(on)
        self._notify(TOPIC_STATE)
        return sent

    def set_brightness(self, value: int) -> bool:
        scheduled = self._dispatcher.set_brightness(value)
        if scheduled:
            self._notify(TOPIC_STATE)
        return scheduled

    def request_status(self) -> bool:
        return self._dispatcher.request_status()

    def clear_log(self) -> None:
        self._events.clear()
        self.log("Console cleared", LogCategory.SUCCESS)

    def close(self) -> None:
        """Disconnect if connected; used on shutdown."""
        if self._session.state is not ConnectionState.DISCONNECTED:
            self.disconnect()
