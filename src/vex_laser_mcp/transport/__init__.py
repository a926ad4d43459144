"""Transport layer: the serial session to the device."""

from .serial_session import ConnectionState, SerialSession, list_serial_ports
