"""Protocol layer: line framing, command builders, and line decoding."""

from .framing import LineFramer, iter_frames
from .commands import Command, build_command, encode_command
from .parser import DecodedLine, MessageKind, StateUpdate, UpdateOrigin, decode_line
