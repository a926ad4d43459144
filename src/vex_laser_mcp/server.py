"""MCP server entry point for the Vex laser controller.

Exposes the controller's user intents as tools and its state and console
log as resources, using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import ControllerConfig
from .engine.controller import LaserController
from .models.events import LogCategory
from .transport.serial_session import list_serial_ports

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "vex-laser",
    instructions="MCP server for the Vex laser controller (serial, 115200 8N1)",
)

# Single device per server process
_controller: LaserController | None = None


def _get_controller() -> LaserController:
    """Get the process-wide controller, creating it on first use."""
    global _controller
    if _controller is None:
        _controller = LaserController(ControllerConfig.from_env())
    return _controller


def _last_error(controller: LaserController) -> str:
    for entry in reversed(controller.log_entries()):
        if entry.category is LogCategory.ERROR:
            return entry.message
    return "Unknown error"


def _state_dict(controller: LaserController) -> dict[str, Any]:
    result = controller.state.to_dict()
    result["connection"] = controller.connection_state.value
    result["port"] = controller.port_name if controller.connected else ""
    return result


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_ports() -> dict[str, Any]:
    """List serial ports visible to the host."""
    return {"ports": list_serial_ports()}


@mcp.tool()
def connect(port: str | None = None) -> dict[str, Any]:
    """Open the serial connection to the laser controller.

    Args:
        port: Port name or pyserial URL (e.g. /dev/ttyACM0, COM3). When
              omitted, VEX_LASER_PORT is used, then auto-detection.
    """
    controller = _get_controller()
    if controller.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "port": controller.port_name,
        }

    if not controller.connect(port):
        return {"connected": False, "error": _last_error(controller)}

    return {"connected": True, "port": controller.port_name}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial connection."""
    controller = _get_controller()
    controller.disconnect()
    return {"disconnected": not controller.connected}


# ─── LASER TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def toggle_power() -> dict[str, Any]:
    """Switch the laser on if it is off, off if it is on."""
    controller = _get_controller()
    if not controller.toggle_power():
        return {"error": _last_error(controller)}
    return {"power": controller.state.power}


@mcp.tool()
def set_power(on: bool) -> dict[str, Any]:
    """Switch the laser on or off.

    Args:
        on: True for LASER_ON, False for LASER_OFF.
    """
    controller = _get_controller()
    if not controller.set_power(on):
        return {"error": _last_error(controller)}
    return {"power": on}


@mcp.tool()
def set_brightness(value: int) -> dict[str, Any]:
    """Set the laser brightness. The command is sent after a short quiet period.

    Args:
        value: Brightness percentage (0-100).
    """
    if not 0 <= value <= 100:
        return {"error": "Brightness must be 0-100"}

    controller = _get_controller()
    if not controller.connected:
        return {"error": "Not connected to device. Use the 'connect' tool first."}

    scheduled = controller.set_brightness(value)
    return {"brightness": value, "scheduled": scheduled}


@mcp.tool()
def request_status() -> dict[str, Any]:
    """Ask the device for a status report."""
    controller = _get_controller()
    if not controller.request_status():
        return {"error": _last_error(controller)}
    return {"requested": True}


@mcp.tool()
def get_state() -> dict[str, Any]:
    """Current device state as last reported (power, brightness, firmware, uptime, heap)."""
    return _state_dict(_get_controller())


# ─── CONSOLE TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def get_log(limit: int = 50) -> dict[str, Any]:
    """Return the most recent console entries, oldest first.

    Args:
        limit: Maximum number of entries (1-100, default 50).
    """
    if not 1 <= limit <= 100:
        return {"error": "Limit must be 1-100"}
    entries = _get_controller().log_entries()[-limit:]
    return {"entries": [e.to_dict() for e in entries]}


@mcp.tool()
def clear_log() -> dict[str, bool]:
    """Clear the console log."""
    _get_controller().clear_log()
    return {"cleared": True}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("laser://device/state")
def resource_device_state() -> str:
    """Device state as last reported."""
    return json.dumps(_state_dict(_get_controller()))


@mcp.resource("laser://device/connection")
def resource_connection() -> str:
    """Connection state and port."""
    controller = _get_controller()
    return json.dumps({
        "connection": controller.connection_state.value,
        "port": controller.port_name if controller.connected else "",
    })


@mcp.resource("laser://console/log")
def resource_console_log() -> str:
    """Full console log (up to 100 entries)."""
    entries = _get_controller().log_entries()
    return json.dumps({"entries": [e.to_dict() for e in entries]})


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    config = ControllerConfig.from_env()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
    try:
        mcp.run(transport="stdio")
    finally:
        if _controller is not None:
            _controller.close()


if __name__ == "__main__":
    main()
