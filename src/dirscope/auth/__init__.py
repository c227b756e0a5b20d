"""Authentication for dirscope sessions.

Public API:
    CredentialStore -- Salted-hash flat-file store with auto-registration
    CredentialStoreError -- Store I/O failure
"""

from dirscope.auth.store import (
    CredentialStore,
    CredentialStoreError,
    generate_salt,
    hash_password,
    is_valid_username,
)

__all__ = [
    "CredentialStore",
    "CredentialStoreError",
    "generate_salt",
    "hash_password",
    "is_valid_username",
]
