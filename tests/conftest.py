"""Shared test fixtures for the dirscope test suite.

Provides common fixtures used across unit tests: a small file tree,
isolated settings and credential store, and in-memory stand-ins for
the asyncio stream reader/writer.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from dirscope.auth.store import CredentialStore
from dirscope.config.settings import LoggingConfig, ServerConfig, Settings, StorageConfig
from dirscope.protocol.framing import ResponseWriter


# ---------------------------------------------------------------------------
# Stream Doubles
# ---------------------------------------------------------------------------


class RecordingWriter:
    """Minimal StreamWriter stand-in that keeps everything written to it."""

    def __init__(self) -> None:
        self.data = bytearray()
        self.writes: list[bytes] = []
        self.closed = False

    def write(self, data: bytes) -> None:
        self.data.extend(data)
        self.writes.append(bytes(data))

    async def drain(self) -> None:
        return None

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None

    def get_extra_info(self, name: str, default: object = None) -> object:
        return default

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", "surrogateescape")


class ScriptedReader:
    """StreamReader stand-in: each read() returns the next scripted message.

    Once the script runs out, reads return b"" (end of stream).
    """

    def __init__(self, *messages: bytes | str) -> None:
        self._messages = [m.encode() if isinstance(m, str) else m for m in messages]
        self.reads = 0

    async def read(self, n: int = -1) -> bytes:
        self.reads += 1
        if not self._messages:
            return b""
        message = self._messages.pop(0)
        return message[:n] if n > 0 else message


@pytest.fixture
def recording_writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def make_writer() -> type[RecordingWriter]:
    """The RecordingWriter class, for tests that need more than one connection."""
    return RecordingWriter


@pytest.fixture
def make_reader() -> type[ScriptedReader]:
    """The ScriptedReader class, for tests that script their own messages."""
    return ScriptedReader


@pytest.fixture
def response_writer(recording_writer: RecordingWriter) -> ResponseWriter:
    return ResponseWriter(recording_writer)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Filesystem Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """``t/a.txt`` (hello), ``t/b.txt`` (world), ``t/sub/c.txt`` (hello world)."""
    root = tmp_path / "t"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_text("hello")
    (root / "b.txt").write_text("world")
    (root / "sub" / "c.txt").write_text("hello world")
    return root


# ---------------------------------------------------------------------------
# Configuration / Store Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    return StorageConfig(
        users_file=tmp_path / "data" / "users.txt",
        scratch_dir=tmp_path / "data" / "scratch",
        session_log_dir=tmp_path / "logs",
    )


@pytest.fixture
def settings(storage_config: StorageConfig) -> Settings:
    """Settings for a loopback server on an ephemeral port."""
    return Settings(
        server=ServerConfig(host="127.0.0.1", port=0),
        storage=storage_config,
        logging=LoggingConfig(file=None),
    )


@pytest.fixture
def store(storage_config: StorageConfig) -> CredentialStore:
    return CredentialStore(storage_config.users_file)
