"""Logging setup utilities for dirscope.

Configures the application-wide ``dirscope`` logger from the logging
settings, and opens the per-session log files that record what each
authenticated user did.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from dirscope.config.settings import LoggingConfig

logger = logging.getLogger(__name__)

SESSION_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure logging for the dirscope application.

    Sets up the root ``dirscope`` logger with the specified level, format,
    and optional file handler. Calling it again replaces the handlers it
    installed previously.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output, logs/server.log).
    """
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger("dirscope")
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (optional)
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.info("Logging initialized at %s level", config.level)


class SessionLog:
    """Append-only log file dedicated to a single client session.

    Wraps a private ``logging.Logger`` (not registered with the logging
    manager, so finished sessions don't accumulate) writing to
    ``<directory>/<username>_<session_id>.log``. The handle is passed
    explicitly to whatever needs to record session activity.
    """

    def __init__(self, path: Path, name: str) -> None:
        self._path = path
        self._logger = logging.Logger(f"dirscope.session.{name}", logging.DEBUG)
        self._logger.propagate = False
        try:
            handler: logging.Handler = logging.FileHandler(
                path, encoding="utf-8", errors="backslashreplace"
            )
        except OSError as e:
            logger.warning("Failed to open session log %s: %s", path, e)
            handler = logging.NullHandler()
        handler.setFormatter(logging.Formatter(SESSION_LOG_FORMAT))
        self._handler = handler
        self._logger.addHandler(handler)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._handler is not None and not isinstance(self._handler, logging.NullHandler)

    def debug(self, msg: str, *args: object) -> None:
        self._logger.debug(msg, *args)

    def info(self, msg: str, *args: object) -> None:
        self._logger.info(msg, *args)

    def warning(self, msg: str, *args: object) -> None:
        self._logger.warning(msg, *args)

    def error(self, msg: str, *args: object) -> None:
        self._logger.error(msg, *args)

    def close(self) -> None:
        """Detach and close the file handler. Safe to call more than once."""
        if self._handler is None:
            return
        self._logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None  # type: ignore[assignment]


def open_session_log(directory: Path, username: str, session_id: str) -> SessionLog:
    """Open (append) the log file for one authenticated session."""
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Cannot create session log directory %s: %s", directory, e)
    name = f"{username}_{session_id}"
    return SessionLog(directory / f"{name}.log", name)
