"""Serial connection to the laser controller board.

The board enumerates as a USB CDC/UART bridge (ESP32-S3 native USB or a
CP210x/CH340 bridge) and talks 115200 baud, 8 data bits, no parity,
1 stop bit, no flow control.

Reads poll with a short timeout so a blocked reader notices a close
request promptly.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Union

import serial
from serial.tools import list_ports

from ..config import (
    BAUD_RATE,
    ESP32_PORT_KEYWORDS,
    READ_CHUNK_SIZE,
    READ_POLL_TIMEOUT_S,
    WRITE_TIMEOUT_S,
)
from ..errors import (
    LaserControllerError,
    OpenFailed,
    PortSelectionFailed,
    ReadFailed,
    UnsupportedTransport,
    WriteFailed,
)

logger = logging.getLogger(__name__)

# A port name/URL, a callable that picks one (None = cancelled), or None
# to auto-detect.
PortSelector = Union[str, Callable[[], Union[str, None]], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def list_serial_ports() -> list[dict[str, str]]:
    """Describe the serial ports visible to the host."""
    return [
        {
            "device": p.device,
            "description": p.description or "",
            "manufacturer": p.manufacturer or "",
        }
        for p in list_ports.comports()
    ]


def _looks_like_controller(port) -> bool:
    text = f"{port.manufacturer or ''} {port.description or ''}".lower()
    return any(k.lower() in text for k in ESP32_PORT_KEYWORDS)


def auto_select_port() -> str:
    """Pick the laser controller's port without asking.

    Prefers ports whose USB descriptors name a known bridge chip and falls
    back to the only port present.

    Raises:
        UnsupportedTransport: Port enumeration is not available on this host.
        PortSelectionFailed: No port, or several unrecognised ones.
    """
    try:
        ports = list(list_ports.comports())
    except OSError as e:
        raise UnsupportedTransport(f"Serial port enumeration unavailable: {e}") from e

    if not ports:
        raise PortSelectionFailed("No serial ports found")

    preferred = [p for p in ports if _looks_like_controller(p)]
    if preferred:
        return preferred[0].device
    if len(ports) == 1:
        return ports[0].device

    names = ", ".join(sorted(p.device for p in ports))
    raise PortSelectionFailed(f"Several serial ports found, choose one of: {names}")


class SerialSession:
    """Owns the open serial channel to the device.

    Usage::

        session = SerialSession()
        session.open("/dev/ttyACM0")
        session.write(b"STATUS\\n")
        chunk = session.read()      # None once closed
        session.close()
    """

    def __init__(
        self,
        port_factory: Callable[..., serial.SerialBase] = serial.serial_for_url,
        read_timeout: float = READ_POLL_TIMEOUT_S,
        chunk_size: int = READ_CHUNK_SIZE,
    ) -> None:
        self._port_factory = port_factory
        self._read_timeout = read_timeout
        self._chunk_size = chunk_size
        self._port: serial.SerialBase | None = None
        self._port_name = ""
        self._state = ConnectionState.DISCONNECTED
        self._closing = threading.Event()
        self._write_lock = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def port_name(self) -> str:
        return self._port_name

    @property
    def closing(self) -> bool:
        """True once :meth:`close` has been requested for the current channel."""
        return self._closing.is_set()

    def open(self, selector: PortSelector = None) -> str:
        """Select, open, and configure the port.

        Returns:
            The name of the opened port.

        Raises:
            UnsupportedTransport: No serial support for the selected port.
            PortSelectionFailed: Selection was cancelled or found nothing.
            OpenFailed: The port could not be opened or configured, or the
                session is not disconnected.
        """
        if self._state is not ConnectionState.DISCONNECTED:
            raise OpenFailed(f"Session is already {self._state.value}")

        self._state = ConnectionState.CONNECTING
        try:
            port_name = self._select(selector)
            port = self._open_port(port_name)
        except Exception:
            self._state = ConnectionState.DISCONNECTED
            raise

        self._port = port
        self._port_name = port_name
        self._closing.clear()
        self._state = ConnectionState.CONNECTED
        logger.info("Opened %s at %d baud", port_name, BAUD_RATE)
        return port_name

    def _select(self, selector: PortSelector) -> str:
        if selector is None:
            return auto_select_port()

        if callable(selector):
            try:
                choice = selector()
            except LaserControllerError:
                raise
            except Exception as e:
                raise PortSelectionFailed(f"Port selection failed: {e}") from e
            if not choice:
                raise PortSelectionFailed("Port selection cancelled")
            return str(choice)

        choice = str(selector).strip()
        if not choice:
            raise PortSelectionFailed("Empty port name")
        return choice

    def _open_port(self, port_name: str) -> serial.SerialBase:
        try:
            port = self._port_factory(port_name, do_not_open=True)
        except (ValueError, ImportError) as e:
            # pyserial: "invalid URL, protocol 'x' not known"
            raise UnsupportedTransport(f"No serial support for {port_name!r}: {e}") from e
        except (serial.SerialException, OSError) as e:
            raise OpenFailed(f"Could not create port {port_name!r}: {e}") from e

        try:
            port.baudrate = BAUD_RATE
            port.bytesize = serial.EIGHTBITS
            port.parity = serial.PARITY_NONE
            port.stopbits = serial.STOPBITS_ONE
            port.xonxoff = False
            port.rtscts = False
            port.dsrdtr = False
            port.timeout = self._read_timeout
            port.write_timeout = WRITE_TIMEOUT_S
            port.open()
        except (serial.SerialException, OSError, ValueError) as e:
            raise OpenFailed(
                f"Could not open {port_name!r}. Ensure the device is connected, "
                f"not in use by another program, and you have permissions. "
                f"Last error: {e}"
            ) from e
        return port

    def close(self) -> None:
        """Release the channel. Safe to call repeatedly.

        Each teardown step runs even if an earlier one fails; failures are
        logged, never raised.
        """
        port = self._port
        if port is None:
            self._state = ConnectionState.DISCONNECTED
            return

        self._closing.set()
        try:
            if hasattr(port, "cancel_read"):
                self._best_effort("cancel pending read", port.cancel_read)
            self._best_effort("release reader", port.reset_input_buffer)
            self._best_effort("close writer", port.flush)
            self._best_effort("close port", port.close)
        finally:
            self._port = None
            self._state = ConnectionState.DISCONNECTED
            logger.info("Closed %s", self._port_name or "serial port")

    @staticmethod
    def _best_effort(step: str, fn: Callable[[], object]) -> None:
        try:
            fn()
        except Exception as e:
            logger.warning("Error during %s: %s", step, e)

    def write(self, data: bytes) -> int:
        """Write bytes to the device.

        Raises:
            WriteFailed: Not connected, or the port rejected the write.
        """
        port = self._port
        if port is None or self._state is not ConnectionState.CONNECTED or self.closing:
            raise WriteFailed("Not connected to device")

        try:
            with self._write_lock:
                written = port.write(data)
        except (serial.SerialException, OSError, ValueError, TypeError) as e:
            raise WriteFailed(f"Serial write failed: {e}") from e
        return len(data) if written is None else written

    def read(self) -> bytes | None:
        """Block until bytes arrive.

        Returns:
            The next non-empty chunk, or ``None`` once the session is
            closed (end of stream).

        Raises:
            ReadFailed: The port failed; ``device_lost`` is set when the
                failure came from the OS/driver, i.e. the device vanished.
        """
        while True:
            port = self._port
            if port is None or self.closing:
                return None

            try:
                waiting = port.in_waiting
                data = port.read(min(max(1, waiting), self._chunk_size))
            except (serial.SerialException, OSError) as e:
                if self.closing:
                    return None
                raise ReadFailed(f"Serial read failed: {e}", device_lost=True) from e
            except Exception as e:
                if self.closing:
                    return None
                raise ReadFailed(f"Serial read failed: {e}") from e

            if data:
                return bytes(data)
