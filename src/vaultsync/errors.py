"""Error kinds surfaced by sources, the store and the sync coordinator."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    SOURCE_UNAVAILABLE = "source_unavailable"
    NOT_FOUND = "not_found"
    AUTHENTICATION_FAILED = "authentication_failed"
    DATA_CORRUPTED = "data_corrupted"


class VaultError(Exception):
    """Base class for every storage failure; ``kind`` tells callers which one."""

    kind: ErrorKind


class SourceUnavailable(VaultError):
    """A source could not be read or written (disk, network, timeout)."""

    kind = ErrorKind.SOURCE_UNAVAILABLE


class NotFound(VaultError):
    """The requested key does not exist in the source."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, key: str) -> None:
        super().__init__(f"No data stored under '{key}'.")
        self.key = key


class AuthenticationFailed(VaultError):
    """The blob did not authenticate: wrong password or tampered ciphertext."""

    kind = ErrorKind.AUTHENTICATION_FAILED


class DataCorrupted(VaultError):
    """The blob envelope or the decrypted record list is malformed."""

    kind = ErrorKind.DATA_CORRUPTED


class SessionLocked(RuntimeError):
    """Raised when a released :class:`~vaultsync.session.Session` is used."""
