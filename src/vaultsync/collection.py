"""In-memory record collection with last-write-wins merging."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping, Optional, Union

from .models import Record

RecordLike = Union[Record, Mapping[str, Any]]

KEY_PREFIX = "coll_"


class Collection:
    """An ordered set of records, at most one per uuid.

    ``_index`` maps each uuid to the position of its record in ``_records``.
    Both are only ever replaced together, by :meth:`add`, :meth:`remove` and
    :meth:`clear`.
    """

    def __init__(self, name: str = "default", records: Optional[Iterable[RecordLike]] = None) -> None:
        self.name = name
        self._records: list[Record] = []
        self._index: dict[str, int] = {}
        if records is not None:
            self.add(records)

    @property
    def key(self) -> str:
        """Persistence key; must stay stable once data exists."""
        return KEY_PREFIX + self.name

    @property
    def records(self) -> tuple[Record, ...]:
        return tuple(self._records)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, records: Union[RecordLike, Iterable[RecordLike]]) -> list[Record]:
        """Merge one or many records into the collection.

        A record whose uuid is already present replaces the existing one (in
        place) only if its *updated* timestamp is strictly later; on a tie the
        existing record is kept. Unknown uuids are appended.

        The merge runs against a copy and is committed at the end, so an
        invalid record anywhere in *records* leaves the collection unchanged.
        Returns the records that were accepted.
        """
        merged = list(self._records)
        index = dict(self._index)
        accepted: list[Record] = []

        for incoming in _as_records(records):
            pos = index.get(incoming.uuid)
            if pos is None:
                index[incoming.uuid] = len(merged)
                merged.append(incoming)
                accepted.append(incoming)
            elif incoming.updated > merged[pos].updated:
                merged[pos] = incoming
                accepted.append(incoming)

        self._records = merged
        self._index = index
        return accepted

    def remove(self, record: Union[Record, str]) -> Record:
        """Replace a record with its tombstone and return the tombstone.

        The tombstone stays in the collection so the removal propagates
        through later merges. Raises :class:`KeyError` for unknown uuids.
        """
        uuid = record if isinstance(record, str) else record.uuid
        pos = self._index[uuid]
        tombstone = self._records[pos].tombstone()

        merged = list(self._records)
        merged[pos] = tombstone
        self._records = merged
        return tombstone

    def clear(self) -> None:
        """Drop all records from memory (the stored copy is untouched)."""
        self._records = []
        self._index = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, uuid: str) -> Optional[Record]:
        pos = self._index.get(uuid)
        return None if pos is None else self._records[pos]

    def live(self) -> list[Record]:
        """Records that have not been removed."""
        return [r for r in self._records if not r.removed]

    def __contains__(self, uuid: object) -> bool:
        return uuid in self._index

    def __iter__(self) -> Iterator[Record]:
        return iter(tuple(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"Collection(name={self.name!r}, records={len(self._records)})"


def _as_records(records: Union[RecordLike, Iterable[RecordLike]]) -> Iterator[Record]:
    if isinstance(records, (Record, Mapping)):
        records = [records]
    for item in records:
        yield item if isinstance(item, Record) else Record.model_validate(item)
