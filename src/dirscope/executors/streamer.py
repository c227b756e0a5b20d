"""Raw file streaming for the INSPECT command."""

from __future__ import annotations

import asyncio
import logging
from typing import BinaryIO

from dirscope.protocol.framing import CANNOT_OPEN_FILE, CHUNK_SIZE, ResponseWriter
from dirscope.utils.logging import SessionLog

logger = logging.getLogger(__name__)


class FileStreamer:
    """Forwards a file's bytes to the client chunk by chunk.

    Nothing is buffered beyond one chunk. If the file can't be opened the
    client gets ``ERROR: Cannot open file`` and the terminator. If a read
    fails part-way, the stream is abandoned without a terminator; what was
    already sent stays sent.
    """

    def __init__(
        self,
        out: ResponseWriter,
        chunk_size: int = CHUNK_SIZE,
        session_log: SessionLog | None = None,
    ) -> None:
        self._out = out
        self._chunk_size = chunk_size
        self._session_log = session_log

    async def stream(self, path: str) -> int:
        """Send the contents of ``path`` followed by the terminator.

        Returns:
            The number of file bytes sent, or -1 if the file couldn't be
            opened or a read failed mid-stream.

        Raises:
            ConnectionError: If the client went away mid-stream.
        """
        loop = asyncio.get_running_loop()
        try:
            f: BinaryIO = await loop.run_in_executor(None, lambda: open(path, "rb"))
        except OSError as e:
            logger.warning("Cannot open %s for inspection: %s", path, e)
            if self._session_log is not None:
                self._session_log.warning("Cannot open file %s: %s", path, e)
            await self._out.send(CANNOT_OPEN_FILE)
            await self._out.end()
            return -1

        sent = 0
        try:
            while True:
                try:
                    chunk = await loop.run_in_executor(None, f.read, self._chunk_size)
                except OSError as e:
                    logger.error("Read failed for %s after %d bytes: %s", path, sent, e)
                    if self._session_log is not None:
                        self._session_log.error("Read failed for %s: %s", path, e)
                    return -1
                if not chunk:
                    break
                await self._out.send(chunk)
                sent += len(chunk)
        finally:
            f.close()

        await self._out.end()
        logger.debug("Streamed %d bytes from %s", sent, path)
        return sent
