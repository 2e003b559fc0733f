# This test file validates schema snapshots and how registered selectors render them.
# It exists so selectors never show stale or duplicate options after a schema replacement.

from __future__ import annotations

import pytest

from src.schema_sync.consumers import (
    ColumnFilter,
    ConsumerRegistration,
    ConsumerSource,
    ConsumerState,
    default_registrations,
    render_consumer,
)
from src.schema_sync.dataset_schema import DatasetSchema, extract_column_names


@pytest.mark.parametrize("key", ["columns", "column_names", "columns_list"])
def test_column_list_accepts_all_known_keys(key: str) -> None:
    assert extract_column_names({key: ["date", "sales"]}) == ["date", "sales"]


def test_integer_column_count_is_skipped() -> None:
    assert extract_column_names({"columns": 3, "column_names": ["a", "b", "c"]}) == ["a", "b", "c"]
    assert extract_column_names({"rows": 10}) is None


def test_upload_schema_requires_filename() -> None:
    with pytest.raises(ValueError):
        DatasetSchema.from_upload({"column_names": ["a"]})

    schema = DatasetSchema.from_upload(
        {"filename": "book.xlsx", "column_names": ["a", "a", "b"], "available_sheets": ["S1", "S2"], "sheet_name": "S2"}
    )
    assert schema.columns == ("a", "b")
    assert schema.selected_sheet == "S2"
    assert schema.is_spreadsheet


def test_render_drops_stale_selection_and_duplicates() -> None:
    registration = ConsumerRegistration(name="value-column")
    previous = ConsumerState(registration=registration, options=("date", "old"), selected="old")
    schema = DatasetSchema.build(filename="f.csv", columns=["date", "sales", "sales"])

    state = render_consumer(registration, schema, previous=previous)

    assert state.options == ("date", "sales")
    assert state.selected is None


def test_render_keeps_surviving_selection() -> None:
    registration = ConsumerRegistration(name="date-column")
    previous = ConsumerState(registration=registration, options=("date",), selected="date")

    state = render_consumer(registration, DatasetSchema.build(filename="f.csv", columns=["date", "y"]), previous=previous)

    assert state.selected == "date"


def test_feature_consumer_excludes_target() -> None:
    registration = ConsumerRegistration(name="features", column_filter=ColumnFilter.EXCLUDE_TARGET)
    schema = DatasetSchema.build(filename="f.csv", columns=["date", "sales", "price"])

    state = render_consumer(registration, schema, target_column="sales")

    assert state.options == ("date", "price")


def test_sheet_consumer_follows_selected_sheet() -> None:
    registration = ConsumerRegistration(name="eda-sheet-name", source=ConsumerSource.SHEETS)
    schema = DatasetSchema.build(filename="b.xlsx", columns=["a"], sheet_names=["S1", "S2"], selected_sheet="S2")

    state = render_consumer(registration, schema)

    assert state.options == ("S1", "S2")
    assert state.selected == "S2"


def test_default_registrations_are_unique() -> None:
    names = [registration.name for registration in default_registrations()]

    assert len(names) == len(set(names))
    assert "train-target-column" in names
    assert "train-feature-columns" in names
