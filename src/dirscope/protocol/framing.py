"""Wire protocol shared by the dirscope server and client.

The protocol has two phases over one plaintext TCP connection:

Authentication (one round trip per field, no terminator)::

    S: "Username: "        C: <username>
    S: "Password: "        C: <password>
    S: "Login successful\\n" | "Account created\\n" | "Incorrect password\\n"

Commands (one round trip at a time)::

    C: TRAVERSE <path>
    C: SEARCH <path> <pattern>
    C: INSPECT <path>
    C: EXIT

Every command-phase response is one or more text/binary segments
followed by ``TERMINATOR``; a receiver buffers until the terminator
appears and strips it. ``EXIT`` gets no response.

Text is carried as UTF-8 with ``surrogateescape`` so arbitrary path and
pattern bytes survive a decode/encode round trip unchanged.
"""

from __future__ import annotations

import asyncio
import logging

from dirscope.domain.models import Command, CommandKind

logger = logging.getLogger(__name__)

TERMINATOR = b"<<END>>\n"

# Single read size; longer messages are silently truncated
BUFFER_SIZE = 4096
# File streaming chunk size
CHUNK_SIZE = 4096

ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"

# Authentication phase literals
USERNAME_PROMPT = "Username: "
PASSWORD_PROMPT = "Password: "
LOGIN_SUCCESSFUL = "Login successful\n"
ACCOUNT_CREATED = "Account created\n"
INCORRECT_PASSWORD = "Incorrect password\n"
INVALID_USERNAME = "Invalid username\n"

# Command phase literals
UNKNOWN_COMMAND = "ERROR: Unknown command\n"
CANNOT_OPEN_FILE = "ERROR: Cannot open file\n"
CANNOT_OPEN_DIRECTORY = "ERROR: Cannot open directory: {path}\n"
DIRECTORY_LINE = "Directory: {path}\n"
FILE_LINE = "File: {path}\n"
TOTAL_FILES = "\nTotal Files: {count}\n"
NO_MATCHES = "\nNo matches found\n"
MATCHED_FILES = "\nMatched Files:\n"


def encode(text: str) -> bytes:
    return text.encode(ENCODING, ENCODING_ERRORS)


def decode(data: bytes) -> str:
    return data.decode(ENCODING, ENCODING_ERRORS)


def strip_line_ending(text: str) -> str:
    """Drop trailing CR/LF characters (and only those)."""
    return text.rstrip("\r\n")


def parse_command(text: str) -> Command:
    """Parse one command-phase message by case-sensitive prefix.

    The argument of each command starts right after the command word and
    its separating space. ``SEARCH`` needs a second space (looked for from
    index 7 onward) between the path and the pattern; without one the
    message is MALFORMED and is meant to be ignored. The pattern is
    everything after that space, so it may itself contain spaces.
    """
    if text.startswith("TRAVERSE"):
        return Command(kind=CommandKind.TRAVERSE, path=text[9:], raw=text)

    if text.startswith("SEARCH"):
        separator = text.find(" ", 7)
        if separator == -1:
            return Command(kind=CommandKind.MALFORMED, raw=text)
        return Command(
            kind=CommandKind.SEARCH,
            path=text[7:separator],
            pattern=text[separator + 1:],
            raw=text,
        )

    if text.startswith("INSPECT"):
        return Command(kind=CommandKind.INSPECT, path=text[8:], raw=text)

    if text.startswith("EXIT"):
        return Command(kind=CommandKind.EXIT, raw=text)

    return Command(kind=CommandKind.UNKNOWN, raw=text)


def format_command(command: Command) -> str:
    """Render a command in wire form (the inverse of parse_command)."""
    if command.kind == CommandKind.TRAVERSE:
        return f"TRAVERSE {command.path}"
    if command.kind == CommandKind.SEARCH:
        return f"SEARCH {command.path} {command.pattern}"
    if command.kind == CommandKind.INSPECT:
        return f"INSPECT {command.path}"
    if command.kind == CommandKind.EXIT:
        return "EXIT"
    return command.raw


class ResponseWriter:
    """Writes response segments to a connection, draining after each one.

    Usage::

        out = ResponseWriter(writer)
        await out.send("Directory: /srv\\n")
        await out.send(b"raw bytes")
        await out.end()
    """

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer
        self._bytes_sent = 0

    @property
    def bytes_sent(self) -> int:
        return self._bytes_sent

    async def send(self, data: str | bytes) -> None:
        """Write one segment and wait for the transport to accept it.

        Raises:
            ConnectionResetError: If the connection is already closing.
            ConnectionError: If the peer went away while draining.
        """
        if isinstance(data, str):
            data = encode(data)
        if self._writer.is_closing():
            raise ConnectionResetError("Connection is closed")
        self._writer.write(data)
        await self._writer.drain()
        self._bytes_sent += len(data)

    async def end(self) -> None:
        """Mark the end of the current response."""
        await self.send(TERMINATOR)


async def read_frame(reader: asyncio.StreamReader, chunk_size: int = BUFFER_SIZE) -> bytes:
    """Read one framed response and return its payload without the terminator.

    Raises:
        IncompleteFrameError: If the stream ends before the terminator.
    """
    buffer = bytearray()
    search_from = 0
    while True:
        index = buffer.find(TERMINATOR, search_from)
        if index != -1:
            if index + len(TERMINATOR) < len(buffer):
                logger.debug(
                    "Discarding %d bytes after terminator",
                    len(buffer) - index - len(TERMINATOR),
                )
            return bytes(buffer[:index])
        # The terminator may straddle two reads
        search_from = max(0, len(buffer) - len(TERMINATOR) + 1)
        chunk = await reader.read(chunk_size)
        if not chunk:
            raise IncompleteFrameError(bytes(buffer))
        buffer.extend(chunk)


class ProtocolError(Exception):
    """Raised when the peer does not follow the dirscope protocol."""


class IncompleteFrameError(ProtocolError):
    """Raised when a connection ends in the middle of a framed response."""

    def __init__(self, partial: bytes) -> None:
        super().__init__(f"Connection closed before terminator ({len(partial)} bytes received)")
        self.partial = partial
