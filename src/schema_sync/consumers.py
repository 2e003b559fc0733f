# This module describes the selectors that render parts of the current dataset schema.
# It exists so each picker declares what it shows once, instead of being rebuilt by hand after every upload or transform.
# Rendering is a pure function of the schema, the consumer's filter, and its previous selection.
# A previous selection survives a rebuild only when the value is still offered.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.schema_sync.dataset_schema import DatasetSchema, unique_in_order

TARGET_CONSUMER = "train-target-column"


class ConsumerSource(str, Enum):
    COLUMNS = "columns"
    SHEETS = "sheets"


class ColumnFilter(str, Enum):
    ALL = "all"
    EXCLUDE_TARGET = "exclude_target"


@dataclass(frozen=True)
class ConsumerRegistration:
    name: str
    source: ConsumerSource = ConsumerSource.COLUMNS
    column_filter: ColumnFilter = ColumnFilter.ALL
    placeholder: str = "Select column"


@dataclass(frozen=True)
class ConsumerState:
    registration: ConsumerRegistration
    options: tuple[str, ...] = ()
    selected: str | None = None

    @property
    def name(self) -> str:
        return self.registration.name


def render_consumer(
    registration: ConsumerRegistration,
    schema: DatasetSchema | None,
    *,
    previous: ConsumerState | None = None,
    target_column: str | None = None,
) -> ConsumerState:
    if schema is None:
        options: tuple[str, ...] = ()
    elif registration.source is ConsumerSource.SHEETS:
        options = unique_in_order(schema.sheet_names)
    else:
        options = unique_in_order(schema.columns)
        if registration.column_filter is ColumnFilter.EXCLUDE_TARGET and target_column:
            options = tuple(option for option in options if option != target_column)

    selected = previous.selected if previous is not None else None
    if registration.source is ConsumerSource.SHEETS and schema is not None and schema.selected_sheet:
        selected = schema.selected_sheet
    if selected not in options:
        selected = None
    return ConsumerState(registration=registration, options=options, selected=selected)


def default_registrations() -> list[ConsumerRegistration]:
    """Selectors of the upload, explore, preprocess, train, and forecast stages."""

    column_pickers = [
        "date-column",
        "value-column",
        "train-date-column",
        TARGET_CONSUMER,
        "forecast-date-column",
        "stationarity-date-column",
        "stationarity-value-column",
        "seasonality-date-column",
        "seasonality-value-column",
    ]
    registrations = [ConsumerRegistration(name=name) for name in column_pickers]
    registrations.append(ConsumerRegistration(name="train-category-column", placeholder="None"))
    registrations.append(
        ConsumerRegistration(name="train-feature-columns", column_filter=ColumnFilter.EXCLUDE_TARGET, placeholder="")
    )
    for name in ("eda-sheet-name", "train-sheet-name", "preprocess-sheet-name"):
        registrations.append(
            ConsumerRegistration(name=name, source=ConsumerSource.SHEETS, placeholder="First Sheet (Default)")
        )
    return registrations
