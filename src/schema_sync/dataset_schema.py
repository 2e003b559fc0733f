"""
Immutable column and sheet metadata for one uploaded or derived dataset version.
Schema endpoints disagree on the column list key, so extraction accepts all three known spellings.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

COLUMN_LIST_KEYS: tuple[str, ...] = ("columns", "column_names", "columns_list")


def unique_in_order(values: Iterable[Any]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(str(value) for value in values if value is not None and str(value) != ""))


def extract_column_names(data: Mapping[str, Any] | None) -> list[str] | None:
    """Return the first list found under `columns`, `column_names`, or `columns_list`."""

    if not isinstance(data, Mapping):
        return None
    for key in COLUMN_LIST_KEYS:
        value = data.get(key)
        if isinstance(value, list):
            return [str(item) for item in value]
    return None


def extract_sheet_names(data: Mapping[str, Any] | None) -> list[str]:
    if not isinstance(data, Mapping):
        return []
    for key in ("available_sheets", "sheets", "sheet_names"):
        value = data.get(key)
        if isinstance(value, list):
            return [str(item) for item in value]
    return []


@dataclass(frozen=True)
class DatasetSchema:
    filename: str
    columns: tuple[str, ...]
    sheet_names: tuple[str, ...] = ()
    selected_sheet: str | None = None

    @classmethod
    def build(
        cls,
        *,
        filename: str,
        columns: Iterable[Any],
        sheet_names: Iterable[Any] = (),
        selected_sheet: str | None = None,
    ) -> DatasetSchema:
        sheets = unique_in_order(sheet_names)
        selected = selected_sheet if selected_sheet else None
        if selected is not None and sheets and selected not in sheets:
            sheets = sheets + (selected,)
        return cls(
            filename=filename,
            columns=unique_in_order(columns),
            sheet_names=sheets,
            selected_sheet=selected,
        )

    @classmethod
    def from_upload(cls, data: Mapping[str, Any]) -> DatasetSchema:
        filename = data.get("filename")
        if not filename:
            raise ValueError("upload response is missing a filename")
        return cls.build(
            filename=str(filename),
            columns=extract_column_names(data) or [],
            sheet_names=extract_sheet_names(data),
            selected_sheet=str(data["sheet_name"]) if data.get("sheet_name") else None,
        )

    @property
    def is_spreadsheet(self) -> bool:
        return self.filename.lower().endswith((".xlsx", ".xls"))

    def with_column(self, column: str) -> DatasetSchema:
        if column in self.columns:
            return self
        return replace(self, columns=self.columns + (column,))
