"""Exception taxonomy for the laser controller.

Transport and decoder code raise these; the controller and the MCP tool
layer catch them at their boundaries and turn them into log entries.
"""

from __future__ import annotations


class LaserControllerError(Exception):
    """Base class for every controller error."""


class UnsupportedTransport(LaserControllerError):
    """The host (or the selected port URL) has no serial capability."""


class PortSelectionFailed(LaserControllerError):
    """No port was chosen: the selector cancelled or nothing usable was found."""


class OpenFailed(LaserControllerError):
    """The port exists but could not be opened or configured."""


class WriteFailed(LaserControllerError):
    """Bytes could not be written to the device."""


class ReadFailed(LaserControllerError):
    """Reading from the device failed.

    ``device_lost`` is set when the failure means the device went away
    (unplugged, port vanished); the read loop disconnects on those.
    """

    def __init__(self, message: str, device_lost: bool = False) -> None:
        super().__init__(message)
        self.device_lost = device_lost


class DecodeFailed(LaserControllerError):
    """A structured line carried a field of the wrong type."""

    def __init__(self, message: str, line: str = "") -> None:
        super().__init__(message)
        self.line = line
