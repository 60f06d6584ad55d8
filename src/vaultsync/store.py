"""Encrypting store: moves a :class:`Collection` to and from a :class:`Source`.

The persisted unit is always the whole record list of a collection,
serialised as a canonical JSON array and sealed with
:mod:`vaultsync.crypto` under the key ``"coll_" + collection.name``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from .collection import Collection
from .crypto import PasswordCodec
from .errors import DataCorrupted
from .models import Record, dump_records, load_records
from .session import Session
from .sources import Source

logger = logging.getLogger(__name__)


class Store:
    """Encryption façade between collections and sources.

    Holds only a default source and the codec; the password travels in the
    :class:`Session` passed to each call.
    """

    def __init__(self, default_source: Source, codec: Optional[PasswordCodec] = None) -> None:
        self.default_source = default_source
        self.codec = codec or PasswordCodec()

    @staticmethod
    def key_for(collection: Collection) -> str:
        return collection.key

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(
        self,
        collection: Collection,
        session: Session,
        *,
        password: Optional[str] = None,
        source: Optional[Source] = None,
    ) -> list[Record]:
        """Read, decrypt and merge the stored records into *collection*.

        *password* overrides the session's password and, once it has
        decrypted the blob, replaces it in the session. Returns the records
        the merge accepted.
        """
        source = source or self.default_source
        secret = session.password if password is None else password
        key = self.key_for(collection)

        blob = await source.get(key)
        plaintext = await asyncio.to_thread(self.codec.decrypt, secret, blob)
        if password is not None:
            session.password = password

        try:
            records = load_records(plaintext)
        except (ValueError, ValidationError) as exc:
            raise DataCorrupted(f"Stored data for '{key}' is not a valid record list.") from exc

        accepted = collection.add(records)
        logger.debug("fetched %s from %r: %d stored, %d merged", key, source, len(records), len(accepted))
        return accepted

    async def save(
        self,
        collection: Collection,
        session: Session,
        *,
        record: Optional[Record] = None,
        source: Optional[Source] = None,
    ) -> Optional[Record]:
        """Encrypt and persist every record of *collection*.

        When *record* is given it is normalized (default name, empty fields
        dropped, fresh timestamp) and merged first; the normalized copy is
        returned.
        """
        source = source or self.default_source
        key = self.key_for(collection)
        # Read first: a released session must leave the collection untouched.
        secret = session.password

        saved = None
        if record is not None:
            current = collection.get(record.uuid)
            saved = record.normalized(None if current is None else current.updated)
            collection.add(saved)

        plaintext = dump_records(collection.records)
        blob = await asyncio.to_thread(self.codec.encrypt, secret, plaintext)
        await source.set(key, blob)
        logger.debug("saved %s to %r: %d records", key, source, len(collection))
        return saved

    async def exists(self, collection: Collection, *, source: Optional[Source] = None) -> bool:
        """Whether *source* holds data for *collection*; nothing is decrypted."""
        source = source or self.default_source
        return await source.exists(self.key_for(collection))

    async def change_password(
        self,
        collection: Collection,
        session: Session,
        new_password: str,
        *,
        source: Optional[Source] = None,
    ) -> None:
        """Switch the session to *new_password* and re-save *collection* under it."""
        session.password = new_password
        await self.save(collection, session, source=source)
        logger.info("re-encrypted %s under a new password", self.key_for(collection))

    @staticmethod
    def lock(collection: Collection, session: Session) -> None:
        """Empty the in-memory collection and drop the session's secret."""
        collection.clear()
        session.release()
