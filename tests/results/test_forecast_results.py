# This test file validates forecast normalization and the session that export code reads from.
# It exists so category forecasts, confidence bounds, and the overall series stay consistent.

from __future__ import annotations

import pytest

from src.results.category_aggregation import AGGREGATE_SYNTHESIZED
from src.results.forecast_results import ForecastSession, normalize_forecast


def test_single_forecast_with_bounds_builds_frame() -> None:
    result = normalize_forecast(
        {
            "status": "success",
            "data": {
                "predictions": [10.0, 11.0],
                "lower_bound": [9.0, 9.5],
                "upper_bound": [11.0, 12.5],
                "future_dates": ["2026-01-01", "2026-01-02"],
                "horizon": 2,
            },
        },
        model_name="prophet_sales",
    )

    assert result.overall.has_interval
    assert result.horizon == 2
    frame = result.to_frame()
    assert list(frame.columns) == ["date", "prediction", "lower_bound", "upper_bound"]
    assert frame["prediction"].tolist() == [10.0, 11.0]


def test_category_forecast_sums_overall_and_records_errors() -> None:
    result = normalize_forecast(
        {
            "is_category_based": True,
            "categories": ["a", "b"],
            "category_forecasts": {
                "a": {"predictions": [1, 2, 3]},
                "b": {"predictions": [4, 5, 6]},
            },
            "future_dates": ["d1", "d2", "d3"],
        }
    )

    assert result.is_category_based
    assert result.overall.predictions == [5.0, 7.0, 9.0]
    assert AGGREGATE_SYNTHESIZED in result.diagnostics
    frame = result.to_frame()
    assert frame["a_prediction"].tolist() == [1.0, 2.0, 3.0]


def test_category_forecast_with_failed_category_has_no_overall() -> None:
    result = normalize_forecast(
        {
            "is_category_based": True,
            "categories": ["a", "b"],
            "category_forecasts": {
                "a": {"predictions": [1, 2]},
                "b": {"error": "model missing"},
            },
        }
    )

    assert result.category_errors == {"b": "model missing"}
    assert result.overall.predictions == []
    assert any("not every category" in note for note in result.diagnostics)


def test_session_export_requires_forecast() -> None:
    session = ForecastSession()
    with pytest.raises(LookupError):
        session.export_frame()

    result = normalize_forecast({"predictions": [1.0, 2.0]}, model_name="m")
    session.record(result, filename="sales.csv", date_column="date")

    assert session.export_frame()["prediction"].tolist() == [1.0, 2.0]
    assert session.filename == "sales.csv"

    session.clear()
    assert session.latest is None
