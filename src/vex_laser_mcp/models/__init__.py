"""Data models for device state and the console log."""

from .state import DeviceState, clamp_brightness, format_uptime
from .events import EventLog, LogCategory, LogEntry
