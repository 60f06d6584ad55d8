"""Domain models for vaultsync."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_serializer,
    model_validator,
)

DEFAULT_NAME = "Unnamed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def _stamp_after(previous: Optional[datetime]) -> datetime:
    """Return now, nudged past *previous* if the clock has not moved beyond it."""
    now = _utcnow()
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


class RecordField(BaseModel):
    """One name/value pair of a record; ``masked`` hides the value in UIs."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    value: str = ""
    masked: bool = False

    def is_empty(self) -> bool:
        return not self.name and not self.value


class Record(BaseModel):
    """A single stored credential entry.

    Records are immutable; every change produces a new copy. A removed record
    (tombstone) keeps only ``uuid``, ``updated`` and ``removed``.
    """

    model_config = ConfigDict(frozen=True)

    uuid: str = Field(default_factory=_new_id)
    name: Optional[str] = None
    fields: list[RecordField] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    updated: datetime = Field(default_factory=_utcnow)
    removed: bool = False

    @field_validator("uuid", mode="before")
    @classmethod
    def _assign_uuid(cls, value: Any) -> Any:
        return value or _new_id()

    @field_validator("updated")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are taken to be UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _tombstone_has_no_payload(self) -> Record:
        if self.removed and (self.name is not None or self.fields or self.tags):
            raise ValueError("a removed record cannot carry a name, fields or tags")
        return self

    @model_serializer(mode="wrap")
    def _serialize(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        if self.removed:
            return {"uuid": data["uuid"], "updated": data["updated"], "removed": True}
        data.pop("removed", None)
        return data

    # ------------------------------------------------------------------
    # Derived copies
    # ------------------------------------------------------------------

    def touched(self) -> Record:
        """Return a copy with *updated* set to now."""
        return self.model_copy(update={"updated": _stamp_after(self.updated)})

    def normalized(self, previous: Optional[datetime] = None) -> Record:
        """Return the copy that gets saved when a single record is edited.

        The name defaults to ``"Unnamed"``, fields with neither name nor value
        are dropped and *updated* is stamped later than both this record's and
        *previous* (the timestamp of the version being replaced).
        """
        latest = self.updated if previous is None else max(self.updated, previous)
        if self.removed:
            return self.model_copy(update={"updated": _stamp_after(latest)})
        return self.model_copy(
            update={
                "name": self.name or DEFAULT_NAME,
                "fields": [f for f in self.fields if not f.is_empty()],
                "updated": _stamp_after(latest),
            }
        )

    def tombstone(self) -> Record:
        """Return a removed copy carrying only identity and a newer timestamp."""
        return Record(uuid=self.uuid, updated=_stamp_after(self.updated), removed=True)


# ---------------------------------------------------------------------------
# Record list (de)serialisation
# ---------------------------------------------------------------------------

_RECORD_LIST = TypeAdapter(list[Record])
_REQUIRED_KEYS = ("uuid", "updated")


def dump_records(records: Iterable[Record]) -> bytes:
    """Serialise *records* to the canonical JSON array stored in a blob."""
    return _RECORD_LIST.dump_json(list(records))


def load_records(data: bytes) -> list[Record]:
    """Parse a canonical JSON array back into records.

    Every element must carry an explicit ``uuid`` and ``updated``; stored data
    never relies on defaults. Raises :class:`ValueError` on any mismatch.
    """
    raw = json.loads(data)
    if not isinstance(raw, list):
        raise ValueError("record data must be a JSON array")
    for item in raw:
        if not isinstance(item, dict) or any(not item.get(k) for k in _REQUIRED_KEYS):
            raise ValueError("every stored record needs a uuid and an updated timestamp")
    return _RECORD_LIST.validate_python(raw)
