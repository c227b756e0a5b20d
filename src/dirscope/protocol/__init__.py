"""Wire protocol for dirscope.

Public API:
    TERMINATOR -- End-of-response marker
    parse_command -- Parse a command-phase message
    ResponseWriter -- Framed response output for the server
    read_frame -- Buffered frame input for the client
"""

from dirscope.protocol.framing import (
    TERMINATOR,
    IncompleteFrameError,
    ProtocolError,
    ResponseWriter,
    parse_command,
    read_frame,
)

__all__ = [
    "TERMINATOR",
    "IncompleteFrameError",
    "ProtocolError",
    "ResponseWriter",
    "parse_command",
    "read_frame",
]
