"""Core domain models for the dirscope system.

These models represent the data flowing through a session: stored
credentials, parsed protocol commands, the session lifecycle, and the
client-side views of framed traversal and search responses.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    """Lifecycle of one client session."""

    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    COMMAND_WAIT = "command_wait"
    EXECUTING = "executing"
    CLOSED = "closed"


class AuthOutcome(str, enum.Enum):
    """Result of checking a username/password against the credential store."""

    LOGGED_IN = "logged_in"  # Known user, password matched
    REGISTERED = "registered"  # Unseen user, record appended
    REJECTED = "rejected"  # Known user, password mismatch


class CommandKind(str, enum.Enum):
    """Kinds of command-phase messages a client can send."""

    TRAVERSE = "TRAVERSE"
    SEARCH = "SEARCH"
    INSPECT = "INSPECT"
    EXIT = "EXIT"
    UNKNOWN = "UNKNOWN"
    MALFORMED = "MALFORMED"  # SEARCH without a path/pattern separator


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialRecord(BaseModel):
    """One line of the credential store: ``username:salt:hash``."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(min_length=1, description="Unique login name")
    salt: str = Field(min_length=1, description="Random alphanumeric salt")
    hash: str = Field(description="Hex digest of password + salt")

    @field_validator("username")
    @classmethod
    def _no_separators(cls, value: str) -> str:
        if any(c in value for c in ":\r\n"):
            raise ValueError("username must not contain ':' or line breaks")
        return value

    def to_line(self) -> str:
        return f"{self.username}:{self.salt}:{self.hash}\n"

    @classmethod
    def from_line(cls, line: str) -> CredentialRecord:
        """Parse a stored line. Raises ValueError on malformed input."""
        parts = line.rstrip("\r\n").split(":", 2)
        if len(parts) != 3:
            raise ValueError(f"malformed credential line: {line!r}")
        username, salt, digest = parts
        return cls(username=username, salt=salt, hash=digest)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class Command(BaseModel):
    """A single parsed command-phase message."""

    model_config = ConfigDict(frozen=True)

    kind: CommandKind
    path: str = Field(default="", description="Target path for TRAVERSE/SEARCH/INSPECT")
    pattern: str = Field(default="", description="Substring to look for (SEARCH only)")
    raw: str = Field(default="", description="The message text as received")


# ---------------------------------------------------------------------------
# Client-side response views
# ---------------------------------------------------------------------------


class TraversalReport(BaseModel):
    """Parsed payload of a TRAVERSE response (or the walk part of a SEARCH)."""

    directories: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    total: int | None = Field(default=None, ge=0, description="Server-reported file count")


class SearchReport(BaseModel):
    """Parsed payload of a SEARCH response."""

    listing: TraversalReport = Field(default_factory=TraversalReport)
    matches: list[str] = Field(default_factory=list, description="Matched paths in discovery order")

    @property
    def found(self) -> bool:
        return bool(self.matches)
