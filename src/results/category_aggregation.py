# This module builds the summed "overall" series for category-partitioned results.
# It exists so training and forecast normalizers share one definition of the aggregate view.
# The aggregate at step i is the sum of every category's value at step i, and only exists when all categories succeeded.
# Mismatched horizons are reported instead of being silently truncated or padded.

from __future__ import annotations

from collections.abc import Mapping, Sequence

import numpy as np

from src.results.metric_record import coerce_metric

AGGREGATE_SYNTHESIZED = "aggregate series synthesized from category sum"
AGGREGATE_MISMATCH = "reported aggregate series differs from the sum of category series"


class AggregationError(ValueError):
    """Raised when category series cannot be summed step by step."""


def as_series(values: object) -> list[float] | None:
    """Coerce a JSON list into floats; None when the payload is not a usable numeric series."""

    if not isinstance(values, (list, tuple)):
        return None
    series: list[float] = []
    for value in values:
        number = coerce_metric(value)
        if number is None:
            return None
        series.append(number)
    return series


def sum_category_series(series_by_category: Mapping[str, Sequence[float]]) -> list[float]:
    if not series_by_category:
        raise AggregationError("no category series to aggregate")

    lengths = {category: len(series) for category, series in series_by_category.items()}
    if len(set(lengths.values())) != 1:
        raise AggregationError(f"category series have different lengths: {lengths}")

    stacked = np.asarray([list(series) for series in series_by_category.values()], dtype=float)
    return [float(value) for value in stacked.sum(axis=0)]


def reconcile_aggregate(
    reported: Sequence[float] | None,
    series_by_category: Mapping[str, Sequence[float] | None],
    *,
    expected_categories: Sequence[str],
    tolerance: float = 1e-6,
) -> tuple[list[float] | None, list[str]]:
    """Return the aggregate series to expose plus any consistency diagnostics.

    When every expected category produced a series the step-wise sum is exposed, and a
    disagreeing backend aggregate is flagged. Otherwise the backend aggregate is kept as reported.
    """

    diagnostics: list[str] = []
    complete = {
        category: series
        for category, series in series_by_category.items()
        if category in expected_categories and series is not None
    }
    all_present = bool(expected_categories) and len(complete) == len(expected_categories)

    summed: list[float] | None = None
    if all_present:
        try:
            summed = sum_category_series(complete)
        except AggregationError as exc:
            diagnostics.append(f"aggregate not computed: {exc}")

    if reported is None:
        if summed is not None:
            diagnostics.append(AGGREGATE_SYNTHESIZED)
        return summed, diagnostics

    reported_list = [float(value) for value in reported]
    if summed is None:
        return reported_list, diagnostics
    if len(summed) != len(reported_list) or not np.allclose(summed, reported_list, atol=tolerance):
        diagnostics.append(AGGREGATE_MISMATCH)
    return summed, diagnostics
