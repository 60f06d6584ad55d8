"""Three-phase synchronisation of one collection between two sources.

1. pull   - fetch the remote copy and merge it (a missing remote counts as empty)
2. commit - save the merged collection to the local source
3. push   - save the same state to the remote source

The local copy is durable before the remote is written, so a failed push
never loses merged data. The first failure aborts the remaining phases and
is re-raised as is.

Both sources are rewritten on every run, even when the pull merged nothing.
Each write uses a fresh salt, so repeated syncs change the stored bytes but
never the decrypted record set. The local source cannot be trusted to hold
the in-memory state without reading it back, and skipping the commit on that
guess could leave it behind the remote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .collection import Collection
from .errors import NotFound
from .session import Session
from .sources import Source
from .store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncReport:
    remote_found: bool
    pulled: int
    pushed: int


class SyncCoordinator:
    """Runs pull/commit/push for a collection through a :class:`Store`."""

    def __init__(self, store: Store) -> None:
        self.store = store

    async def run(
        self,
        collection: Collection,
        session: Session,
        local: Source,
        remote: Source,
    ) -> SyncReport:
        key = self.store.key_for(collection)

        logger.info("sync %s: pulling from %r", key, remote)
        try:
            pulled = await self.store.fetch(collection, session, source=remote)
            remote_found = True
        except NotFound:
            logger.warning("sync %s: nothing stored remotely yet, treating remote as empty", key)
            pulled = []
            remote_found = False

        logger.info("sync %s: committing %d records to %r", key, len(collection), local)
        await self.store.save(collection, session, source=local)

        logger.info("sync %s: pushing to %r", key, remote)
        await self.store.save(collection, session, source=remote)

        return SyncReport(remote_found=remote_found, pulled=len(pulled), pushed=len(collection))
