"""Host-side controller and MCP server for the Vex laser device."""

__version__ = "0.1.0"
