"""vaultsync — encrypted record storage and synchronisation for credential managers."""

__version__ = "0.1.0"

from .collection import Collection
from .crypto import PasswordCodec
from .errors import (
    AuthenticationFailed,
    DataCorrupted,
    ErrorKind,
    NotFound,
    SessionLocked,
    SourceUnavailable,
    VaultError,
)
from .models import Record, RecordField
from .session import Session
from .sources import FileSource, HttpSource, MemorySource, Source, TimeoutSource
from .store import Store
from .sync import SyncCoordinator, SyncReport

__all__ = [
    "AuthenticationFailed",
    "Collection",
    "DataCorrupted",
    "ErrorKind",
    "FileSource",
    "HttpSource",
    "MemorySource",
    "NotFound",
    "PasswordCodec",
    "Record",
    "RecordField",
    "Session",
    "SessionLocked",
    "Source",
    "SourceUnavailable",
    "Store",
    "SyncCoordinator",
    "SyncReport",
    "TimeoutSource",
    "VaultError",
    "__version__",
]
