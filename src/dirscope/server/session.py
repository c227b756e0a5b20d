"""Per-connection session controller.

A session walks through::

    CONNECTED -> AUTHENTICATING -> AUTHENTICATED
              -> COMMAND_WAIT <-> EXECUTING -> CLOSED

Authentication is one read per field with no framing: each side assumes
a whole username or password arrives in a single read. After that, each
inbound read is one command, executed to completion (and its framed
response sent) before the next read. ``CLOSED`` is reached on ``EXIT``,
end of stream, a connection error, or failed authentication.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from dirscope.auth.store import CredentialStore, CredentialStoreError, is_valid_username
from dirscope.config.settings import StorageConfig
from dirscope.domain.models import AuthOutcome, Command, CommandKind, SessionState
from dirscope.executors.scanner import ContentScanner
from dirscope.executors.streamer import FileStreamer
from dirscope.executors.walker import DirectoryWalker, WalkError
from dirscope.protocol.framing import (
    ACCOUNT_CREATED,
    BUFFER_SIZE,
    INCORRECT_PASSWORD,
    INVALID_USERNAME,
    LOGIN_SUCCESSFUL,
    MATCHED_FILES,
    NO_MATCHES,
    PASSWORD_PROMPT,
    TOTAL_FILES,
    UNKNOWN_COMMAND,
    USERNAME_PROMPT,
    ResponseWriter,
    decode,
    parse_command,
    strip_line_ending,
)
from dirscope.utils.logging import SessionLog, open_session_log

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _filename_safe(name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


class SessionController:
    """Owns one client connection from handshake to close.

    Usage::

        session = SessionController(reader, writer, store, settings.storage, "1234-1")
        await session.run()
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        store: CredentialStore,
        storage: StorageConfig,
        session_id: str,
        buffer_size: int = BUFFER_SIZE,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._out = ResponseWriter(writer)
        self._store = store
        self._storage = storage
        self._session_id = session_id
        self._buffer_size = buffer_size
        self._state = SessionState.CONNECTED
        self._username: str | None = None
        self._session_log: SessionLog | None = None
        self._scratch_path: Path | None = None
        self._commands_handled = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def username(self) -> str | None:
        return self._username

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def commands_handled(self) -> int:
        return self._commands_handled

    async def run(self) -> None:
        """Authenticate, serve commands until the session ends, then clean up."""
        try:
            if await self._authenticate():
                await self._command_loop()
        except ConnectionError as e:
            logger.info("Session %s: connection lost: %s", self._session_id, e)
        finally:
            await self._teardown()

    # -------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------

    async def _authenticate(self) -> bool:
        self._state = SessionState.AUTHENTICATING

        await self._out.send(USERNAME_PROMPT)
        raw = await self._receive()
        if raw is None:
            logger.info("Session %s: disconnected before username", self._session_id)
            return False
        username = strip_line_ending(raw)

        await self._out.send(PASSWORD_PROMPT)
        raw = await self._receive()
        if raw is None:
            logger.info("Session %s: disconnected before password", self._session_id)
            return False
        password = strip_line_ending(raw)

        if not is_valid_username(username):
            logger.warning("Session %s: invalid username %r", self._session_id, username)
            await self._out.send(INVALID_USERNAME)
            return False

        try:
            outcome = await self._store.authenticate(username, password)
        except CredentialStoreError as e:
            logger.error("Session %s: cannot authenticate %s: %s", self._session_id, username, e)
            return False

        if outcome == AuthOutcome.REJECTED:
            logger.warning("Session %s: incorrect password for %s", self._session_id, username)
            await self._out.send(INCORRECT_PASSWORD)
            return False

        self._username = username
        self._open_session_resources()
        if outcome == AuthOutcome.LOGGED_IN:
            self._log_session("User authenticated")
            await self._out.send(LOGIN_SUCCESSFUL)
        else:
            self._log_session("New user registered")
            await self._out.send(ACCOUNT_CREATED)

        self._state = SessionState.AUTHENTICATED
        logger.info("Session %s: %s authenticated (%s)", self._session_id, username, outcome.value)
        return True

    def _open_session_resources(self) -> None:
        safe_name = _filename_safe(self._username or "")
        self._session_log = open_session_log(
            self._storage.session_log_dir, safe_name, self._session_id
        )
        try:
            self._storage.scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create scratch directory %s: %s", self._storage.scratch_dir, e)
        self._scratch_path = self._storage.scratch_dir / f"{safe_name}_{self._session_id}.files"

    # -------------------------------------------------------------------
    # Command loop
    # -------------------------------------------------------------------

    async def _command_loop(self) -> None:
        while True:
            self._state = SessionState.COMMAND_WAIT
            raw = await self._receive()
            if raw is None:
                logger.info("Session %s: client disconnected", self._session_id)
                return

            text = strip_line_ending(raw)
            self._log_session("Command: %s", text)
            command = parse_command(text)

            if command.kind == CommandKind.EXIT:
                self._log_session("Session ended")
                return

            self._state = SessionState.EXECUTING
            await self._dispatch(command)
            self._commands_handled += 1

    async def _dispatch(self, command: Command) -> None:
        if command.kind == CommandKind.TRAVERSE:
            await self._traverse(command)
        elif command.kind == CommandKind.SEARCH:
            await self._search(command)
        elif command.kind == CommandKind.INSPECT:
            await self._inspect(command)
        elif command.kind == CommandKind.MALFORMED:
            logger.debug("Session %s: ignoring malformed command %r", self._session_id, command.raw)
        else:
            logger.warning("Session %s: unknown command %r", self._session_id, command.raw)
            await self._out.send(UNKNOWN_COMMAND)
            await self._out.end()

    async def _traverse(self, command: Command) -> None:
        count = await self._walk(command.path, self._require_scratch_path())
        await self._out.send(TOTAL_FILES.format(count=count))
        await self._out.end()
        logger.info("Session %s: traversal of %s completed (%d files)", self._session_id, command.path, count)

    async def _search(self, command: Command) -> None:
        scratch_path = self._require_scratch_path()
        await self._walk(command.path, scratch_path)
        scanner = ContentScanner(scratch_path, session_log=self._session_log)
        matches = await scanner.scan(command.pattern)

        if not matches:
            await self._out.send(NO_MATCHES)
        else:
            await self._out.send(MATCHED_FILES)
            for path in matches:
                await self._out.send(path + "\n")
        await self._out.end()
        logger.info(
            "Session %s: search of %s for %r completed (%d matches)",
            self._session_id, command.path, command.pattern, len(matches),
        )

    async def _inspect(self, command: Command) -> None:
        streamer = FileStreamer(self._out, session_log=self._session_log)
        sent = await streamer.stream(command.path)
        logger.info("Session %s: inspect of %s executed (%d bytes)", self._session_id, command.path, sent)

    async def _walk(self, path: str, scratch_path: Path) -> int:
        """Start a fresh scratch list and walk ``path`` into it."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, scratch_path.write_bytes, b"")
        except OSError as e:
            logger.warning("Cannot truncate scratch list %s: %s", scratch_path, e)

        walker = DirectoryWalker(self._out, scratch_path, session_log=self._session_log)
        try:
            return await walker.walk(path)
        except WalkError as e:
            logger.error("Session %s: %s", self._session_id, e)
            self._log_session("Walk failed: %s", e)
            await self._out.send(f"ERROR: {e}\n")
            return walker.file_count

    def _require_scratch_path(self) -> Path:
        if self._scratch_path is None:
            raise SessionError(f"Session {self._session_id} is not authenticated")
        return self._scratch_path

    # -------------------------------------------------------------------
    # I/O helpers
    # -------------------------------------------------------------------

    async def _receive(self) -> str | None:
        """One read of at most ``buffer_size`` bytes; None at end of stream."""
        data = await self._reader.read(self._buffer_size)
        if not data:
            return None
        return decode(data)

    def _log_session(self, msg: str, *args: object) -> None:
        if self._session_log is not None:
            self._session_log.info(msg, *args)

    async def _teardown(self) -> None:
        self._state = SessionState.CLOSED
        if self._session_log is not None:
            self._session_log.close()
        if self._scratch_path is not None:
            try:
                self._scratch_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Cannot remove scratch list %s: %s", self._scratch_path, e)
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except ConnectionError:
            pass
        logger.debug("Session %s closed after %d commands", self._session_id, self._commands_handled)


class SessionError(Exception):
    """Raised when a command runs on a session that was never authenticated."""
