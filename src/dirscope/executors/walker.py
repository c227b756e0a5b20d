"""Depth-first directory walk that streams its progress to the client.

The walk is pre-order: a directory's ``Directory:`` line goes out
before anything beneath it, and each subdirectory is finished before
the walk moves on to that subdirectory's later siblings. It uses an
explicit stack of pending directory listings rather than recursion, so
tree depth is bounded only by memory.

Regular files are counted, announced with a ``File:`` line, and their
absolute paths appended to the session's scratch list for a later
content scan. Symlinks, devices, FIFOs and sockets are skipped.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Iterator, NamedTuple, TextIO

from dirscope.protocol.framing import (
    CANNOT_OPEN_DIRECTORY,
    DIRECTORY_LINE,
    ENCODING,
    ENCODING_ERRORS,
    FILE_LINE,
    ResponseWriter,
)
from dirscope.utils.logging import SessionLog

logger = logging.getLogger(__name__)


class Entry(NamedTuple):
    name: str
    path: str
    is_dir: bool


def list_directory(path: str) -> list[Entry]:
    """Classify the directories and regular files directly under ``path``.

    Blocking; run it in an executor. Entries are sorted by name so the
    discovery order is deterministic. An entry whose metadata can't be
    read is skipped.

    Raises:
        OSError: If ``path`` itself can't be opened or listed.
    """
    entries: list[Entry] = []
    with os.scandir(path) as it:
        for dirent in it:
            full_path = os.path.join(path, dirent.name)
            try:
                if dirent.is_dir(follow_symlinks=False):
                    entries.append(Entry(dirent.name, full_path, True))
                elif dirent.is_file(follow_symlinks=False):
                    entries.append(Entry(dirent.name, full_path, False))
            except OSError as e:
                logger.warning("Cannot stat %s: %s", full_path, e)
    entries.sort(key=lambda entry: entry.name)
    return entries


class DirectoryWalker:
    """Walks one directory tree for one TRAVERSE or SEARCH command.

    Usage::

        walker = DirectoryWalker(out, scratch_path, session_log)
        count = await walker.walk("/srv/data")
    """

    def __init__(
        self,
        out: ResponseWriter,
        scratch_path: Path,
        session_log: SessionLog | None = None,
    ) -> None:
        self._out = out
        self._scratch_path = scratch_path
        self._session_log = session_log
        self._file_count = 0
        self._directory_count = 0

    @property
    def file_count(self) -> int:
        return self._file_count

    @property
    def directory_count(self) -> int:
        return self._directory_count

    async def walk(self, base_path: str) -> int:
        """Walk ``base_path`` and return the number of regular files found.

        The scratch list is appended to, not truncated; the caller decides
        when a new list starts.

        Raises:
            WalkError: If the scratch list can't be written. Files counted
                before the failure remain in ``file_count``.
            ConnectionError: If the client went away mid-walk.
        """
        loop = asyncio.get_running_loop()
        try:
            scratch: TextIO = await loop.run_in_executor(None, self._open_scratch)
        except OSError as e:
            raise WalkError(f"Failed to open output file: {self._scratch_path}") from e

        try:
            stack: list[Iterator[Entry]] = []
            root = await self._enter(base_path)
            if root is not None:
                stack.append(root)

            while stack:
                entry = next(stack[-1], None)
                if entry is None:
                    stack.pop()
                    continue
                if entry.is_dir:
                    listing = await self._enter(entry.path)
                    if listing is not None:
                        stack.append(listing)
                    continue

                self._file_count += 1
                await self._out.send(FILE_LINE.format(path=entry.path))
                line = os.path.abspath(entry.path) + "\n"
                try:
                    await loop.run_in_executor(None, scratch.write, line)
                except OSError as e:
                    raise WalkError(f"Failed writing to output file: {self._scratch_path}") from e
        finally:
            try:
                await loop.run_in_executor(None, scratch.close)
            except OSError as e:
                logger.warning("Failed to close output file %s: %s", self._scratch_path, e)

        logger.debug(
            "Walked %s: %d directories, %d files",
            base_path, self._directory_count, self._file_count,
        )
        return self._file_count

    def _open_scratch(self) -> TextIO:
        # newline="\n" so a "\r" in a file name is written through untouched
        return open(
            self._scratch_path, "a", encoding=ENCODING, errors=ENCODING_ERRORS, newline="\n"
        )

    async def _enter(self, path: str) -> Iterator[Entry] | None:
        """List ``path`` and announce it, or report that it can't be opened."""
        loop = asyncio.get_running_loop()
        try:
            entries = await loop.run_in_executor(None, list_directory, path)
        except OSError as e:
            logger.warning("Cannot open directory %s: %s", path, e)
            if self._session_log is not None:
                self._session_log.warning("Cannot open directory %s: %s", path, e)
            await self._out.send(CANNOT_OPEN_DIRECTORY.format(path=path))
            return None
        self._directory_count += 1
        await self._out.send(DIRECTORY_LINE.format(path=path))
        return iter(entries)


class WalkError(Exception):
    """Raised when a walk can't record its results in the scratch list."""
