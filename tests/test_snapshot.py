"""Tests for the record snapshot codec."""

from datetime import datetime

import pytest

from changegate.errors.exceptions import ReconciliationError
from changegate.services.policy import type_key
from changegate.services.snapshot import restore_snapshot, snapshot_attributes, take_snapshot

from approval_models import Note, Post


def _post() -> Post:
    return Post(
        id=7,
        title="metaware",
        body=None,
        state="approved",
        meta={"tags": ["a", "b"]},
        created_at=datetime(2026, 1, 2, 3, 4, 5),
        updated_at=datetime(2026, 1, 2, 3, 4, 5),
    )


class TestTakeSnapshot:
    def test_blob_is_self_describing(self):
        raw = take_snapshot(_post())
        assert raw["record_type"] == type_key(Post)
        assert raw["schema_version"] == "1.0"
        assert raw["attributes"]["title"] == "metaware"
        assert raw["attributes"]["created_at"] == "2026-01-02T03:04:05"

    def test_unset_columns_are_omitted(self):
        raw = take_snapshot(Post(title="only a title"))
        assert snapshot_attributes(raw) == {"title"}


class TestRestoreSnapshot:
    def test_restores_concrete_type_and_values(self):
        revived = restore_snapshot(take_snapshot(_post()))
        assert isinstance(revived, Post)
        assert revived.id == 7
        assert revived.body is None
        assert revived.meta == {"tags": ["a", "b"]}
        assert revived.created_at == datetime(2026, 1, 2, 3, 4, 5)

    def test_revived_record_keeps_model_behaviour(self):
        revived = restore_snapshot(take_snapshot(_post()))
        assert revived.is_approved() is True

    def test_dropped_columns_are_ignored(self):
        raw = take_snapshot(_post())
        raw["attributes"]["subtitle"] = "removed column"
        revived = restore_snapshot(raw)
        assert not hasattr(revived, "subtitle")

    def test_unregistered_type_is_refused(self):
        raw = take_snapshot(Note(id=1, text="hi"))
        with pytest.raises(ReconciliationError):
            restore_snapshot(raw)

    def test_malformed_blob(self):
        with pytest.raises(ReconciliationError):
            restore_snapshot({"attributes": {}})

    def test_bad_value_for_column(self):
        raw = take_snapshot(_post())
        raw["attributes"]["id"] = "not a number"
        with pytest.raises(ReconciliationError) as exc_info:
            restore_snapshot(raw)
        assert exc_info.value.details == {"attribute": "id"}
