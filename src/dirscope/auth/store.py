"""Flat-file credential store with salted SHA-256 password hashes.

Each user is one line of ``username:salt:hash`` where ``hash`` is the hex
SHA-256 digest of ``password + salt``. The file is only ever appended
to and is re-read in full on every login. A first login with an unseen
username registers that user.

The scan-then-append sequence runs under an exclusive ``flock`` on the
file, so concurrent first logins for the same name (from other tasks,
threads, or server processes) still yield exactly one record.
"""

from __future__ import annotations

import asyncio
import fcntl
import hashlib
import hmac
import logging
import secrets
import string
from pathlib import Path
from typing import IO, Iterable, Iterator

from dirscope.domain.models import AuthOutcome, CredentialRecord
from dirscope.protocol.framing import ENCODING, ENCODING_ERRORS, encode

logger = logging.getLogger(__name__)

SALT_LENGTH = 16
SALT_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase


def generate_salt(length: int = SALT_LENGTH) -> str:
    """Return ``length`` characters drawn uniformly from [0-9A-Za-z]."""
    return "".join(secrets.choice(SALT_ALPHABET) for _ in range(length))


def hash_password(password: str, salt: str) -> str:
    """Hex SHA-256 of ``password + salt``, or ``""`` if it can't be computed."""
    try:
        return hashlib.sha256(encode(password + salt)).hexdigest()
    except (UnicodeError, TypeError) as e:
        logger.error("Password digest failed: %s", e)
        return ""


def is_valid_username(username: str) -> bool:
    """Whether ``username`` can be stored as the first field of a record."""
    return bool(username) and not any(c in username for c in ":\r\n")


class CredentialStore:
    """Append-only ``username:salt:hash`` file, looked up by linear scan.

    Usage::

        store = CredentialStore(Path("data/users.txt"))
        outcome = await store.authenticate("alice", "s3cret")
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def authenticate(self, username: str, password: str) -> AuthOutcome:
        """Log in a known user or register an unseen one.

        Returns:
            LOGGED_IN if the password matches the stored hash,
            REJECTED if it does not (or the digest could not be computed),
            REGISTERED if the username was new and a record was appended.

        Raises:
            CredentialStoreError: If the file cannot be read or written.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self._authenticate_locked(username, password)
        )

    def lookup(self, username: str) -> CredentialRecord | None:
        """Return the stored record for ``username``, if any."""
        for record in self.records():
            if record.username == username:
                return record
        return None

    def records(self) -> list[CredentialRecord]:
        """All well-formed records in file order."""
        try:
            with open(self._path, encoding=ENCODING, errors=ENCODING_ERRORS, newline="\n") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    return list(self._iter_records(f))
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise CredentialStoreError(f"Cannot read credential store {self._path}: {e}") from e

    def _authenticate_locked(self, username: str, password: str) -> AuthOutcome:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # a+ keeps every write at the end of the file
            with open(
                self._path, "a+", encoding=ENCODING, errors=ENCODING_ERRORS, newline="\n"
            ) as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.seek(0)
                    content = f.read()
                    for record in self._iter_records(content.split("\n")):
                        if record.username == username:
                            return self._verify(record, password)
                    return self._register(f, content, username, password)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logger.error("Credential store %s unavailable: %s", self._path, e)
            raise CredentialStoreError(f"Cannot access credential store {self._path}: {e}") from e

    def _verify(self, record: CredentialRecord, password: str) -> AuthOutcome:
        digest = hash_password(password, record.salt)
        if not digest:
            logger.warning("Rejecting login for %s: empty digest", record.username)
            return AuthOutcome.REJECTED
        if hmac.compare_digest(digest, record.hash):
            logger.info("User %s logged in", record.username)
            return AuthOutcome.LOGGED_IN
        logger.info("Incorrect password for %s", record.username)
        return AuthOutcome.REJECTED

    def _register(self, f: IO[str], content: str, username: str, password: str) -> AuthOutcome:
        salt = generate_salt()
        digest = hash_password(password, salt)
        if not digest:
            logger.warning("Refusing to register %s: empty digest", username)
            return AuthOutcome.REJECTED
        record = CredentialRecord(username=username, salt=salt, hash=digest)
        if content and not content.endswith("\n"):
            f.write("\n")
        f.write(record.to_line())
        f.flush()
        logger.info("Registered new user %s", username)
        return AuthOutcome.REGISTERED

    def _iter_records(self, lines: Iterable[str]) -> Iterator[CredentialRecord]:
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                yield CredentialRecord.from_line(line)
            except ValueError:
                logger.warning("Skipping malformed line %d in %s", number, self._path)


class CredentialStoreError(Exception):
    """Raised when the credential file cannot be read or written."""
