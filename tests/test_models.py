"""Tests for vaultsync.models."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from vaultsync.models import Record, RecordField, dump_records, load_records


def test_record_defaults():
    r = Record(name="test")
    assert r.uuid
    assert r.name == "test"
    assert r.fields == []
    assert r.tags == []
    assert r.removed is False
    assert r.updated.tzinfo == timezone.utc


def test_record_ids_are_unique():
    ids = {Record(name="x").uuid for _ in range(100)}
    assert len(ids) == 100


def test_empty_uuid_gets_assigned():
    assert Record(uuid="", name="x").uuid
    assert Record.model_validate({"uuid": None, "name": "x"}).uuid


def test_naive_timestamp_is_utc():
    r = Record(name="x", updated=datetime(2024, 1, 1, 12, 0))
    assert r.updated == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_records_are_immutable():
    r = Record(name="x")
    with pytest.raises(ValidationError):
        r.name = "y"


def test_touched_moves_timestamp_forward():
    r = Record(name="x")
    assert r.touched().updated > r.updated
    assert r.touched().uuid == r.uuid


def test_normalized_defaults_name_and_drops_empty_fields():
    r = Record(
        fields=[
            RecordField(name="user", value="alice"),
            RecordField(),
            RecordField(value="orphan value"),
        ]
    )
    n = r.normalized()
    assert n.name == "Unnamed"
    assert [f.value for f in n.fields] == ["alice", "orphan value"]
    assert n.updated > r.updated


def test_normalized_stamps_after_previous_version():
    future = datetime.now(timezone.utc) + timedelta(days=1)
    n = Record(name="x").normalized(previous=future)
    assert n.updated > future


def test_tombstone_clears_payload():
    r = Record(name="github", fields=[RecordField(name="pw", value="s3cret", masked=True)], tags=["dev"])
    t = r.tombstone()
    assert t.uuid == r.uuid
    assert t.removed is True
    assert t.name is None
    assert t.fields == [] and t.tags == []
    assert t.updated > r.updated
    # The original is untouched.
    assert r.name == "github" and not r.removed


def test_tombstone_with_payload_is_rejected():
    with pytest.raises(ValidationError):
        Record(name="x", removed=True)


def test_serialised_live_record_omits_removed():
    r = Record(name="x", fields=[RecordField(name="a", value="b")], tags=["t"])
    data = json.loads(dump_records([r]))[0]
    assert set(data) == {"uuid", "name", "fields", "tags", "updated"}
    assert data["fields"] == [{"name": "a", "value": "b", "masked": False}]


def test_serialised_tombstone_has_only_identity():
    t = Record(name="x").tombstone()
    data = json.loads(dump_records([t]))[0]
    assert set(data) == {"uuid", "updated", "removed"}
    assert data["removed"] is True


def test_load_records_roundtrip():
    records = [
        Record(name="a", fields=[RecordField(name="pw", value="1", masked=True)], tags=["x", "y"]),
        Record(name="b").tombstone(),
    ]
    assert load_records(dump_records(records)) == records


def test_load_records_requires_updated():
    with pytest.raises(ValueError):
        load_records(b'[{"uuid": "1", "name": "x"}]')


def test_load_records_requires_array():
    with pytest.raises(ValueError):
        load_records(b'{"uuid": "1"}')


def test_load_records_rejects_bad_json():
    with pytest.raises(ValueError):
        load_records(b"not json")
