"""Password-based authenticated encryption for collection blobs.

Key derivation: PBKDF2-HMAC-SHA256 (600 000 iterations by default, 32-byte salt).
Encryption:     Fernet (AES-128-CBC + HMAC-SHA256).

Blob format
-----------
Offset  Length  Content
0       4       Magic bytes b"VSYN"
4       1       Format version (uint8)
5       4       PBKDF2 iterations (big-endian uint32)
9       2       Salt length in bytes (big-endian uint16)
11      N       Salt
11+N    …       Fernet token
"""

from __future__ import annotations

import base64
import os
import struct
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import AuthenticationFailed, DataCorrupted

SALT_SIZE = 32
PBKDF2_ITERATIONS = 600_000
MAX_ITERATIONS = 10_000_000

_MAGIC = b"VSYN"
_FORMAT_VERSION = 1
_HEADER = struct.Struct(">BIH")


def generate_salt() -> bytes:
    """Return a cryptographically-random 32-byte salt."""
    return os.urandom(SALT_SIZE)


def derive_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Derive a 32-byte Fernet-compatible key from *password* and *salt*."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    raw = kdf.derive(password.encode("utf-8"))
    return base64.urlsafe_b64encode(raw)


def encrypt(password: str, plaintext: bytes, *, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Encrypt *plaintext* into a self-describing blob keyed by *password*."""
    salt = generate_salt()
    token = Fernet(derive_key(password, salt, iterations)).encrypt(plaintext)
    return _MAGIC + _HEADER.pack(_FORMAT_VERSION, iterations, len(salt)) + salt + token


def decrypt(password: str, blob: bytes) -> bytes:
    """Decrypt a blob produced by :func:`encrypt`.

    Raises :class:`DataCorrupted` when the envelope cannot be parsed and
    :class:`AuthenticationFailed` when the token does not authenticate.
    """
    iterations, salt, token = _parse(blob)
    key = derive_key(password, salt, iterations)
    try:
        return Fernet(key).decrypt(token)
    except (InvalidToken, InvalidSignature) as exc:
        raise AuthenticationFailed("Decryption failed: wrong password or tampered data.") from exc


@dataclass(frozen=True)
class PasswordCodec:
    """The encryption codec used by :class:`~vaultsync.store.Store`."""

    iterations: int = PBKDF2_ITERATIONS

    def encrypt(self, password: str, plaintext: bytes) -> bytes:
        return encrypt(password, plaintext, iterations=self.iterations)

    def decrypt(self, password: str, blob: bytes) -> bytes:
        # Iterations come from the blob header, not from the codec.
        return decrypt(password, blob)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _parse(blob: bytes) -> tuple[int, bytes, bytes]:
    """Return *(iterations, salt, token)* from a raw blob."""
    offset = len(_MAGIC)
    if len(blob) < offset + _HEADER.size or not blob.startswith(_MAGIC):
        raise DataCorrupted("Not a valid vaultsync blob.")

    fmt_ver, iterations, salt_len = _HEADER.unpack_from(blob, offset)
    offset += _HEADER.size

    if fmt_ver != _FORMAT_VERSION:
        raise DataCorrupted(f"Unsupported blob format version: {fmt_ver}.")
    if not 1 <= iterations <= MAX_ITERATIONS:
        raise DataCorrupted(f"Implausible key-derivation iteration count: {iterations}.")

    salt = blob[offset : offset + salt_len]
    offset += salt_len
    token = blob[offset:]

    if len(salt) != salt_len or not salt or not token:
        raise DataCorrupted("Blob is truncated or corrupt.")

    return iterations, salt, token
