"""Domain models for dirscope.

This package contains the core data structures and enumerations used
throughout the system. All models use Pydantic v2 for validation.
"""

from dirscope.domain.models import (
    AuthOutcome,
    Command,
    CommandKind,
    CredentialRecord,
    SearchReport,
    SessionState,
    TraversalReport,
)

__all__ = [
    "AuthOutcome",
    "Command",
    "CommandKind",
    "CredentialRecord",
    "SearchReport",
    "SessionState",
    "TraversalReport",
]
