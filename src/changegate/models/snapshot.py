"""Pydantic model for the serialized record snapshot stored with each approval."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RecordSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: str = Field(..., pattern=r"^\d+\.\d+(\.\d+)?$")
    record_type: str = Field(..., min_length=1)
    attributes: dict[str, Any]
