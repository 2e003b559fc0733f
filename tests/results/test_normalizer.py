# This test file validates dispatch and folding in the training result normalizer.
# It exists so flat, nested, ensemble, and category payloads keep mapping onto the same result model.
# Malformed payloads must degrade to empty results with diagnostics instead of raising.

from __future__ import annotations

import pytest

from src.results.metric_record import (
    CategoryFailure,
    CategoryPartitionedResult,
    ConstituentStatus,
    MetricRecord,
    ModelFamily,
    ResultShape,
    TrainingResult,
)
from src.results.normalizer import UNRECOGNIZED_PAYLOAD, fold_split_metrics, normalize_training_result


def test_flat_and_nested_metrics_fold_identically() -> None:
    flat = fold_split_metrics(
        {
            "train_mae": 1.5,
            "train_rmse": 2.0,
            "validation_r2": 0.7,
            "validation_mape": 12.0,
            "test_mape": 14.0,
        }
    )
    nested = fold_split_metrics(
        {
            "train": {"mae": 1.5, "rmse": 2.0},
            "validation": {"r2": 0.7, "mape": 12.0},
            "test": {"mape": 14.0},
        }
    )

    assert flat == nested
    assert flat.names() == ["train", "validation", "test"]


def test_flat_field_wins_over_nested() -> None:
    splits = fold_split_metrics({"test_mape": 9.0, "test": {"mape": 30.0, "mae": 2.0}})

    assert splits.get("test") == MetricRecord(mape=9.0, mae=2.0)


def test_unprefixed_legacy_fields_fill_train() -> None:
    splits = fold_split_metrics({"mae": 3.0, "rmse": 4.0, "aic": 120.5, "train_mae": 2.5})

    train = splits.get("train")
    assert train is not None
    assert train.mae == 2.5
    assert train.rmse == 4.0
    assert train.aic == 120.5


def test_nan_metrics_are_absent_not_zero() -> None:
    splits = fold_split_metrics({"test_mape": float("nan"), "test_r2": None, "validation_mae": "n/a"})

    assert not splits


def test_recurrent_shape_from_nested_train_and_validation() -> None:
    result = normalize_training_result(
        {
            "status": "success",
            "data": {
                "model_type": "lstm",
                "metrics": {
                    "train": {"mae": 0.4, "r2": 0.91},
                    "validation": {"mae": 0.6, "r2": 0.83},
                    "test": {"mae": 0.7, "r2": 0.8},
                },
                "training_history": {"loss": [0.9, 0.5, 0.3], "val_loss": [1.0, 0.7, "bad"]},
            },
        }
    )

    assert isinstance(result, TrainingResult)
    assert result.shape is ResultShape.RECURRENT
    assert result.family is ModelFamily.RECURRENT_NETWORK
    assert result.training_history == {"loss": [0.9, 0.5, 0.3]}


def test_flat_shape_keeps_extras() -> None:
    result = normalize_training_result(
        {
            "model_type": "XGBoost",
            "model_name": "xgb_sales",
            "metrics": {"train_r2": 0.95, "test_r2": 0.8},
            "feature_importance": {"lag_1": 0.2, "lag_7": 0.5, "month": 0.3},
            "leakage_check": {"passed": True},
            "cross_validation": {"folds": 5, "mean_rmse": 1.2},
        }
    )

    assert result.shape is ResultShape.FLAT
    assert result.model_type == "xgboost"
    assert result.model_name == "xgb_sales"
    assert list(result.feature_importance) == ["lag_7", "month", "lag_1"]
    assert result.leakage_check == {"passed": True}
    assert result.cross_validation == {"folds": 5, "mean_rmse": 1.2}


def test_ensemble_drops_train_split_and_reads_weights() -> None:
    result = normalize_training_result(
        {
            "model_type": "ensemble",
            "metrics": {
                "train": {"rmse": 0.5},
                "validation_rmse": 1.1,
                "validation_r2": 0.7,
                "test_r2": 0.65,
            },
            "weights": {"prophet": 0.8, "gbm": 0.2},
            "ensemble_models": {
                "prophet": {"model": "fitted", "validation_rmse": 1.0},
                "sarimax": {"model": None},
                "gbm": {"model": "fitted", "validation_rmse": 1.2},
            },
        }
    )

    assert result.shape is ResultShape.ENSEMBLE
    assert "train" not in result.splits
    assert any("train split" in note for note in result.diagnostics)
    assert result.ensemble is not None
    assert result.ensemble.as_triple() == (0.8, 0.0, 0.2)
    assert result.ensemble.statuses["sarimax"] is ConstituentStatus.FAILED
    assert result.ensemble.best_model == "prophet"


def test_ensemble_without_weights_resolves_from_constituent_rmse() -> None:
    result = normalize_training_result(
        {
            "model_type": "ensemble",
            "metrics": {"validation": {"rmse": 1.0}, "test": {"rmse": 1.1}},
            "ensemble_models": {
                "prophet": {"model": "fitted", "validation_rmse": 1.0},
                "sarimax": {"model": "fitted", "validation_rmse": 1.2},
                "gbm": {"model": "fitted", "validation_rmse": 5.0},
            },
        }
    )

    assert result.ensemble is not None
    assert result.ensemble.as_triple() == pytest.approx((0.8, 0.2, 0.0))
    assert result.ensemble.statuses["gbm"] is ConstituentStatus.EXCLUDED


def test_unrecognized_payload_is_empty_with_diagnostic() -> None:
    result = normalize_training_result({"status": "success", "data": {"message": "done"}})

    assert isinstance(result, TrainingResult)
    assert result.shape is ResultShape.EMPTY
    assert not result.has_metrics
    assert result.diagnostics == (UNRECOGNIZED_PAYLOAD,)
    assert result.raw == {"message": "done"}


def test_non_mapping_payload_does_not_raise() -> None:
    result = normalize_training_result(["unexpected"])

    assert isinstance(result, TrainingResult)
    assert result.shape is ResultShape.EMPTY
    assert result.raw == {"payload": ["unexpected"]}


def test_category_payload_with_partial_failure() -> None:
    result = normalize_training_result(
        {
            "model_type": "random_forest",
            "category_column": "store",
            "categories": ["a", "b", "c"],
            "category_results": {
                "a": {"metrics": {"test_mape": 10.0}, "predictions": [1, 2, 3]},
                "b": {"metrics": {"test_mape": 20.0}, "predictions": [4, 5, 6]},
                "c": {"error": "Insufficient data", "rows": 3},
            },
            "aggregated_metrics": {"test": {"mape": 15.0}},
            "failed_categories": 1,
        }
    )

    assert isinstance(result, CategoryPartitionedResult)
    assert result.category_column == "store"
    assert result.total_categories == 3
    assert result.successful_categories == 2
    assert result.failed_categories == 1
    assert result.failures() == [CategoryFailure(category="c", error="Insufficient data", rows=3)]
    assert result.category_results["a"].family is ModelFamily.RANDOM_FOREST
    assert result.aggregated.predictions is None
    assert not result.all_categories_succeeded


def test_ensemble_weight_on_failed_constituent_is_redistributed() -> None:
    result = normalize_training_result(
        {
            "model_type": "ensemble",
            "metrics": {"validation_rmse": 1.0, "test_r2": 0.6},
            "weights": {"prophet": 0.5, "sarimax": 0.3, "gbm": 0.2},
            "ensemble_models": {
                "prophet": {"model": "fitted"},
                "sarimax": {"model": None},
                "gbm": {"model": "fitted"},
            },
        }
    )

    assert result.ensemble is not None
    assert result.ensemble.as_triple() == pytest.approx((0.5 / 0.7, 0.0, 0.2 / 0.7))
    assert sum(result.ensemble.weights.values()) == pytest.approx(1.0)
    assert result.ensemble.statuses["sarimax"] is ConstituentStatus.FAILED
    assert any("renormalized" in note for note in result.diagnostics)
