"""Whole-file substring search over a scratch file list."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from dirscope.protocol.framing import ENCODING, ENCODING_ERRORS, encode
from dirscope.utils.logging import SessionLog

logger = logging.getLogger(__name__)


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _read_list(path: Path) -> list[str]:
    # Only "\n" ends an entry; a "\r" belongs to the file name
    with open(path, encoding=ENCODING, errors=ENCODING_ERRORS, newline="\n") as f:
        return [line[:-1] if line.endswith("\n") else line for line in f if line != "\n"]


class ContentScanner:
    """Tests every file named in a scratch list for a byte substring.

    Matching is exact, case-sensitive and binary-safe, and works on whole
    files: a hit anywhere in a file yields its path, never a line number.
    Each file is read fully into memory, one at a time.
    """

    def __init__(self, scratch_path: Path, session_log: SessionLog | None = None) -> None:
        self._scratch_path = scratch_path
        self._session_log = session_log

    async def scan(self, pattern: str) -> list[str]:
        """Return the listed paths whose content contains ``pattern``, in list order.

        Files that can't be opened or read are skipped. An unreadable list
        yields no matches.
        """
        needle = encode(pattern)
        loop = asyncio.get_running_loop()
        try:
            paths = await loop.run_in_executor(None, _read_list, self._scratch_path)
        except OSError as e:
            logger.warning("Cannot open file list %s: %s", self._scratch_path, e)
            if self._session_log is not None:
                self._session_log.warning("Cannot open file list: %s", e)
            return []

        matches: list[str] = []
        for path in paths:
            try:
                content = await loop.run_in_executor(None, _read_file, path)
            except OSError as e:
                logger.debug("Skipping unreadable file %s: %s", path, e)
                continue
            if needle in content:
                matches.append(path)

        logger.debug("Scanned %d files for %r: %d matches", len(paths), pattern, len(matches))
        return matches
