"""TCP listener that runs one isolated session task per connection.

The listener accepts connections until a shutdown event fires. Each
connection gets its own ``SessionController`` running in its own task;
a crash in one session is logged and goes no further. Finished tasks
are reaped as they complete. On shutdown the listening socket is closed
(no new connections) and every live session is awaited until it ends
on its own.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
from types import TracebackType

from dirscope.auth.store import CredentialStore
from dirscope.config.settings import Settings
from dirscope.server.session import SessionController

logger = logging.getLogger(__name__)


class Listener:
    """Accept loop and worker supervisor for the dirscope server.

    Usage::

        shutdown = asyncio.Event()
        listener = Listener(settings)
        await listener.start()
        await listener.serve_until(shutdown)
    """

    def __init__(self, settings: Settings, store: CredentialStore | None = None) -> None:
        self._config = settings.server
        self._storage = settings.storage
        self._store = store or CredentialStore(settings.storage.users_file)
        self._server: asyncio.AbstractServer | None = None
        self._workers: set[asyncio.Task[None]] = set()
        self._session_numbers = itertools.count(1)
        self._sessions_started = 0

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def port(self) -> int:
        """The bound port (useful when configured with port 0)."""
        if self._server is None or not self._server.sockets:
            return self._config.port
        return self._server.sockets[0].getsockname()[1]

    @property
    def active_sessions(self) -> int:
        return len(self._workers)

    @property
    def sessions_started(self) -> int:
        return self._sessions_started

    async def start(self) -> None:
        """Bind and begin accepting connections.

        Raises:
            ListenerError: If the socket can't be bound or listened on.
        """
        if self._server is not None:
            raise ListenerError("Listener already started")
        try:
            self._server = await asyncio.start_server(
                self._on_connect,
                self._config.host,
                self._config.port,
                backlog=self._config.backlog,
                reuse_address=True,
            )
        except OSError as e:
            raise ListenerError(
                f"Cannot listen on {self._config.host}:{self._config.port}: {e}"
            ) from e
        logger.info("Listening on %s:%d", self._config.host, self.port)

    async def serve_until(self, shutdown: asyncio.Event) -> None:
        """Serve until ``shutdown`` is set, then stop accepting and drain."""
        if self._server is None:
            await self.start()
        await shutdown.wait()
        await self.close()

    async def close(self) -> None:
        """Stop accepting and wait for every live session to finish."""
        if self._server is None:
            return
        logger.info("Server shutting down")
        self._server.close()
        if self._workers:
            logger.info("Waiting for %d active session(s) to finish", len(self._workers))
            await asyncio.gather(*list(self._workers), return_exceptions=True)
        await self._server.wait_closed()
        self._server = None
        logger.info("Server stopped")

    def _on_connect(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        session_id = f"{os.getpid()}-{next(self._session_numbers)}"
        peer = writer.get_extra_info("peername")
        logger.info("Client connected from %s (session %s)", peer, session_id)
        try:
            task = asyncio.get_running_loop().create_task(
                self._run_session(reader, writer, session_id),
                name=f"session-{session_id}",
            )
        except RuntimeError as e:
            logger.error("Failed to start session %s: %s", session_id, e)
            writer.close()
            return
        self._sessions_started += 1
        self._workers.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task[None]) -> None:
        self._workers.discard(task)

    async def _run_session(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        session_id: str,
    ) -> None:
        session = SessionController(
            reader,
            writer,
            self._store,
            self._storage,
            session_id,
            buffer_size=self._config.buffer_size,
        )
        try:
            await session.run()
        except Exception:
            logger.exception("Session %s crashed", session_id)
            writer.close()
        else:
            logger.info("Client session %s ended", session_id)

    async def __aenter__(self) -> Listener:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class ListenerError(Exception):
    """Raised when the server socket can't be set up."""
