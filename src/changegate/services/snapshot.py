"""Snapshot codec - full record state to a self-describing JSON blob and back."""

import base64
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python
from sqlalchemy import JSON, inspect
from sqlalchemy.orm import ColumnProperty

from changegate.config import settings
from changegate.errors.exceptions import ReconciliationError
from changegate.models.snapshot import RecordSnapshot
from changegate.services.policy import resolve_record_class, type_key


@lru_cache(maxsize=None)
def _adapter(python_type: type) -> TypeAdapter:
    return TypeAdapter(python_type)


def take_snapshot(record: Any) -> dict:
    """Serialize every loaded column of *record* with its in-memory values."""
    state = inspect(record)
    attributes = {}
    for prop in state.mapper.column_attrs:
        if prop.key in state.unloaded:
            continue
        attributes[prop.key] = to_jsonable_python(
            state.dict.get(prop.key), bytes_mode="base64"
        )
    snapshot = RecordSnapshot(
        schema_version=settings.snapshot_schema_version,
        record_type=type_key(type(record)),
        attributes=attributes,
    )
    return snapshot.model_dump(mode="json")


def coerce_column_value(prop: ColumnProperty, value: Any) -> Any:
    """Convert a JSON-decoded value back to the column's Python type."""
    if value is None:
        return None
    column_type = prop.columns[0].type
    if isinstance(column_type, JSON):
        return value
    try:
        python_type = column_type.python_type
    except NotImplementedError:
        return value
    if python_type is bytes:
        return base64.urlsafe_b64decode(value)
    return _adapter(python_type).validate_python(value)


def restore_snapshot(raw: dict) -> Any:
    """Rebuild a transient instance of the snapshot's concrete record type.

    Attributes that are no longer mapped columns are dropped.

    Raises:
        ReconciliationError: The blob is malformed, names an unregistered
            type, or holds a value that does not fit its column.
    """
    try:
        snapshot = RecordSnapshot.model_validate(raw)
    except PydanticValidationError as exc:
        raise ReconciliationError("Snapshot is malformed", details=exc.errors()) from exc

    cls = resolve_record_class(snapshot.record_type)
    if cls is None:
        raise ReconciliationError(
            f"Snapshot type '{snapshot.record_type}' is not registered for approval"
        )

    mapper = inspect(cls)
    record = mapper.class_manager.new_instance()
    columns = {prop.key: prop for prop in mapper.column_attrs}
    for key, value in snapshot.attributes.items():
        prop = columns.get(key)
        if prop is None:
            continue
        try:
            setattr(record, key, coerce_column_value(prop, value))
        except (PydanticValidationError, ValueError, TypeError) as exc:
            raise ReconciliationError(
                f"Snapshot value for '{key}' does not fit {snapshot.record_type}",
                details={"attribute": key},
            ) from exc
    return record


def snapshot_attributes(raw: dict) -> set[str]:
    """Attribute keys carried by a snapshot blob."""
    return set((raw or {}).get("attributes", {}))
