# This file defines the wire contracts for analytics responses the panel reads field by field.
# It exists so upload and transform responses are validated once at the edge instead of probed everywhere.
# Training and forecast payloads vary too much for a fixed model and go through the result normalizers instead.
# Unknown fields are ignored so additive backend changes do not break the panel.

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class PayloadShapeError(ValueError):
    """Raised when a response parses as JSON but does not carry the fields the panel needs."""


class UploadData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filename: str = Field(min_length=1)
    rows: int | None = None
    columns: int | list[str] | None = None
    column_names: list[str] | None = None
    available_sheets: list[str] | None = None
    sheet_name: str | None = None


class TransformResponse(BaseModel):
    """Result of a destructive preprocessing step that writes a new dataset version."""

    model_config = ConfigDict(extra="ignore")

    status: str
    processed_file: str = Field(min_length=1)
    new_column_name: str | None = None
    transformation_applied: str | None = None
    is_stationary_after: bool | None = None
    has_seasonality_after: bool | None = None


class TrainedModelInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    size: int | None = None
    modified: float | None = None

    @property
    def size_kb(self) -> float | None:
        return round(self.size / 1024, 2) if self.size is not None else None


def parse_upload(data: dict[str, Any]) -> UploadData:
    try:
        return UploadData.model_validate(data)
    except ValidationError as exc:
        raise PayloadShapeError(f"upload response did not match the expected shape: {exc}") from exc


def parse_transform(payload: dict[str, Any]) -> TransformResponse:
    try:
        return TransformResponse.model_validate(payload)
    except ValidationError as exc:
        raise PayloadShapeError(f"transform response did not match the expected shape: {exc}") from exc
