# This module normalizes forecast payloads and keeps the last forecast for download and plot collaborators.
# It exists so the panel never reads forecast data from ad hoc globals.
# Category-based forecasts expose the overall series as the step-wise sum of category series, checked for consistency.
# The session converts the latest forecast into a pandas frame that export code can write as CSV or Excel.

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from src.results.category_aggregation import as_series, reconcile_aggregate
from src.results.normalizer import unwrap_envelope

LOGGER = logging.getLogger("results")


@dataclass(frozen=True)
class ForecastSeries:
    predictions: list[float]
    lower_bound: list[float] | None = None
    upper_bound: list[float] | None = None

    @property
    def has_interval(self) -> bool:
        return (
            self.lower_bound is not None
            and self.upper_bound is not None
            and len(self.lower_bound) == len(self.predictions) == len(self.upper_bound)
        )


@dataclass(frozen=True)
class ForecastResult:
    model_name: str | None
    future_dates: tuple[str, ...]
    overall: ForecastSeries
    horizon: int | None = None
    is_category_based: bool = False
    categories: tuple[str, ...] = ()
    category_forecasts: dict[str, ForecastSeries] = field(default_factory=dict)
    category_errors: dict[str, str] = field(default_factory=dict)
    diagnostics: tuple[str, ...] = ()

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame({"prediction": self.overall.predictions})
        if self.future_dates and len(self.future_dates) == len(self.overall.predictions):
            frame.insert(0, "date", list(self.future_dates))
        if self.overall.has_interval:
            frame["lower_bound"] = self.overall.lower_bound
            frame["upper_bound"] = self.overall.upper_bound
        for category, series in self.category_forecasts.items():
            if len(series.predictions) == len(frame):
                frame[f"{category}_prediction"] = series.predictions
        return frame


def _series(payload: Mapping[str, Any]) -> ForecastSeries | None:
    predictions = as_series(payload.get("predictions"))
    if predictions is None:
        return None
    return ForecastSeries(
        predictions=predictions,
        lower_bound=as_series(payload.get("lower_bound")),
        upper_bound=as_series(payload.get("upper_bound")),
    )


def normalize_forecast(raw: Any, *, model_name: str | None = None) -> ForecastResult:
    data = unwrap_envelope(raw) or {}
    diagnostics: list[str] = []
    future_dates = tuple(str(value) for value in data.get("future_dates") or [])
    horizon = data.get("horizon")
    horizon = int(horizon) if isinstance(horizon, int) and not isinstance(horizon, bool) else None

    category_payloads = data.get("category_forecasts")
    if not (data.get("is_category_based") and isinstance(category_payloads, Mapping)):
        overall = _series(data)
        if overall is None:
            diagnostics.append("forecast payload carried no usable predictions")
            overall = ForecastSeries(predictions=[])
        return ForecastResult(
            model_name=model_name,
            future_dates=future_dates,
            overall=overall,
            horizon=horizon if horizon is not None else len(overall.predictions) or None,
            diagnostics=tuple(diagnostics),
        )

    raw_categories = data.get("categories")
    categories = tuple(str(value) for value in (raw_categories or list(category_payloads.keys())))
    category_forecasts: dict[str, ForecastSeries] = {}
    category_errors: dict[str, str] = {}
    for category in categories:
        payload = category_payloads.get(category)
        if not isinstance(payload, Mapping):
            category_errors[category] = "no forecast returned for category"
            continue
        if payload.get("error"):
            category_errors[category] = str(payload["error"])
            continue
        series = _series(payload)
        if series is None:
            category_errors[category] = "category forecast carried no usable predictions"
            continue
        category_forecasts[category] = series

    predictions, notes = reconcile_aggregate(
        as_series(data.get("predictions")),
        {category: series.predictions for category, series in category_forecasts.items()},
        expected_categories=categories,
    )
    diagnostics.extend(notes)
    if predictions is None:
        diagnostics.append("overall forecast unavailable because not every category produced a forecast")

    overall = ForecastSeries(
        predictions=predictions or [],
        lower_bound=as_series(data.get("lower_bound")),
        upper_bound=as_series(data.get("upper_bound")),
    )
    return ForecastResult(
        model_name=model_name,
        future_dates=future_dates,
        overall=overall,
        horizon=horizon if horizon is not None else len(overall.predictions) or None,
        is_category_based=True,
        categories=categories,
        category_forecasts=category_forecasts,
        category_errors=category_errors,
        diagnostics=tuple(diagnostics),
    )


class ForecastSession:
    """Holds the latest forecast and the request context it was generated for."""

    def __init__(self) -> None:
        self.latest: ForecastResult | None = None
        self.filename: str | None = None
        self.date_column: str | None = None

    def record(self, result: ForecastResult, *, filename: str | None, date_column: str | None) -> None:
        self.latest = result
        self.filename = filename
        self.date_column = date_column
        LOGGER.info(
            "forecast recorded model_name=%s horizon=%s category_based=%s",
            result.model_name,
            result.horizon,
            result.is_category_based,
        )

    def clear(self) -> None:
        self.latest = None
        self.filename = None
        self.date_column = None

    def export_frame(self) -> pd.DataFrame:
        if self.latest is None:
            raise LookupError("no forecast has been generated in this session")
        return self.latest.to_frame()
