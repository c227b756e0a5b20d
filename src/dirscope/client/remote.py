"""Async client for a dirscope server.

Speaks the same protocol as ``dirscope.server``: the unframed
username/password handshake, then one command at a time with responses
read until the terminator.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Awaitable, TypeVar

from dirscope.domain.models import AuthOutcome, SearchReport, TraversalReport
from dirscope.protocol.framing import (
    ACCOUNT_CREATED,
    INCORRECT_PASSWORD,
    INVALID_USERNAME,
    LOGIN_SUCCESSFUL,
    MATCHED_FILES,
    PASSWORD_PROMPT,
    USERNAME_PROMPT,
    ProtocolError,
    decode,
    encode,
    read_frame,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_traversal(text: str) -> TraversalReport:
    """Split a TRAVERSE payload into directories, files, errors, and total."""
    report = TraversalReport()
    for line in text.split("\n"):
        if line.startswith("Directory: "):
            report.directories.append(line[len("Directory: "):])
        elif line.startswith("File: "):
            report.files.append(line[len("File: "):])
        elif line.startswith("ERROR: "):
            report.errors.append(line[len("ERROR: "):])
        elif line.startswith("Total Files: "):
            report.total = int(line[len("Total Files: "):])
    return report


def parse_search(text: str) -> SearchReport:
    """Split a SEARCH payload into the walk listing and the matched paths."""
    listing, header, tail = text.partition(MATCHED_FILES)
    if not header:
        return SearchReport(listing=parse_traversal(text))
    matches = [line for line in tail.split("\n") if line]
    return SearchReport(listing=parse_traversal(listing), matches=matches)


class RemoteClient:
    """Connection to a dirscope server.

    Example usage::

        async with RemoteClient("127.0.0.1", 9090) as client:
            await client.login("alice", "s3cret")
            report = await client.search("/srv/data", "needle")
            print(report.matches)
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 9090, timeout: float = 30.0) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._authenticated = False

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    async def connect(self) -> None:
        """Open the TCP connection.

        Raises:
            ConnectionError: If the server can't be reached.
        """
        try:
            self._reader, self._writer = await self._bounded(
                asyncio.open_connection(self._host, self._port)
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise ConnectionError(f"Cannot connect to {self._host}:{self._port}: {e}") from e
        logger.debug("Connected to %s:%d", self._host, self._port)

    async def login(self, username: str, password: str) -> AuthOutcome:
        """Answer the server's prompts and return how the login went.

        Raises:
            AuthenticationError: If the server rejects the credentials.
            ProtocolError: If the server's prompts or reply are unexpected.
        """
        await self._expect(USERNAME_PROMPT)
        await self._send(username)
        await self._expect(PASSWORD_PROMPT)
        await self._send(password)

        reply = decode(await self._bounded(self._require_reader().readline()))
        if reply == LOGIN_SUCCESSFUL:
            outcome = AuthOutcome.LOGGED_IN
        elif reply == ACCOUNT_CREATED:
            outcome = AuthOutcome.REGISTERED
        elif reply in (INCORRECT_PASSWORD, INVALID_USERNAME) or not reply:
            raise AuthenticationError(reply.strip() or "Connection closed during login")
        else:
            raise ProtocolError(f"Unexpected login reply: {reply!r}")

        self._authenticated = True
        logger.info("Logged in as %s (%s)", username, outcome.value)
        return outcome

    async def request(self, command: str) -> bytes:
        """Send one command and return the framed payload without the terminator."""
        await self._send(command)
        return await self._bounded(read_frame(self._require_reader()))

    async def traverse(self, path: str) -> TraversalReport:
        payload = await self.request(f"TRAVERSE {path}")
        return parse_traversal(decode(payload))

    async def search(self, path: str, pattern: str) -> SearchReport:
        payload = await self.request(f"SEARCH {path} {pattern}")
        return parse_search(decode(payload))

    async def inspect(self, path: str) -> bytes:
        return await self.request(f"INSPECT {path}")

    async def close(self) -> None:
        """Send EXIT (if logged in) and close the connection. Safe to call twice."""
        if self._writer is None:
            return
        writer = self._writer
        self._writer = None
        self._reader = None
        try:
            if self._authenticated and not writer.is_closing():
                writer.write(b"EXIT")
                await writer.drain()
        except ConnectionError as e:
            logger.debug("EXIT not delivered: %s", e)
        self._authenticated = False
        writer.close()
        try:
            await writer.wait_closed()
        except ConnectionError:
            pass

    async def _send(self, text: str) -> None:
        if self._writer is None:
            raise ConnectionError("Not connected")
        self._writer.write(encode(text))
        await self._writer.drain()

    async def _expect(self, literal: str) -> None:
        expected = encode(literal)
        try:
            data = await self._bounded(self._require_reader().readexactly(len(expected)))
        except asyncio.IncompleteReadError as e:
            raise ProtocolError(f"Connection closed waiting for {literal!r}") from e
        if data != expected:
            raise ProtocolError(f"Expected {literal!r}, got {decode(data)!r}")

    def _require_reader(self) -> asyncio.StreamReader:
        if self._reader is None:
            raise ConnectionError("Not connected")
        return self._reader

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, self._timeout)

    async def __aenter__(self) -> RemoteClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class AuthenticationError(Exception):
    """Raised when the server refuses a login."""
