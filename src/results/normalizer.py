# This module maps every training payload the analytics service returns onto the canonical result model.
# It exists because model families report metrics as flat fields, nested split objects, ensemble blocks, or per-category maps.
# Dispatch is first-match-wins: category-partitioned, recurrent nested splits, ensemble, then flat fields.
# Lookups degrade to None instead of raising, and unrecognizable payloads become empty results with diagnostics.

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from src.results.category_aggregation import as_series, reconcile_aggregate
from src.results.ensemble_weighting import (
    DEFAULT_BEST_WEIGHT_FLOOR,
    DEFAULT_EXCLUSION_RATIO,
    ENSEMBLE_CONSTITUENTS,
    resolve_ensemble_weights,
)
from src.results.metric_record import (
    METRIC_FIELDS,
    SPLIT_NAMES,
    CategoryFailure,
    CategoryOutcome,
    CategoryPartitionedResult,
    ConstituentStatus,
    EnsembleWeighting,
    MetricRecord,
    ResultShape,
    SplitMetrics,
    TrainingResult,
    coerce_metric,
    family_for_model_type,
)

LOGGER = logging.getLogger("results")

UNRECOGNIZED_PAYLOAD = "unrecognized training payload: no metrics and no category list"


def unwrap_envelope(raw: Any) -> dict[str, Any] | None:
    """Return the `data` object of a `{status, data}` envelope, or the mapping itself."""

    if not isinstance(raw, Mapping):
        return None
    data = raw.get("data")
    if "status" in raw and isinstance(data, Mapping):
        return dict(data)
    return dict(raw)


def fold_split_metrics(metrics: Mapping[str, Any] | None) -> SplitMetrics:
    """Fold nested split objects and `<split>_<metric>` flat fields into one SplitMetrics.

    Flat fields win over nested ones. Unprefixed legacy fields and top-level AIC/BIC fill the
    train split.
    """

    if not isinstance(metrics, Mapping):
        return SplitMetrics()

    splits: dict[str, MetricRecord] = {}
    for split in SPLIT_NAMES:
        nested = MetricRecord.from_mapping(metrics.get(split))
        flat = MetricRecord.from_mapping({name: metrics.get(f"{split}_{name}") for name in METRIC_FIELDS})
        record = flat.merged_with(nested)
        if split == "train":
            legacy = MetricRecord.from_mapping({name: metrics.get(name) for name in METRIC_FIELDS})
            record = record.merged_with(legacy)
        if not record.is_empty:
            splits[split] = record
    return SplitMetrics(splits)


def _numeric_mapping(value: Any) -> dict[str, float]:
    if not isinstance(value, Mapping):
        return {}
    mapped: dict[str, float] = {}
    for key, raw in value.items():
        number = coerce_metric(raw)
        if number is not None:
            mapped[str(key)] = number
    return mapped


def _feature_importance(value: Any) -> dict[str, float]:
    importance = _numeric_mapping(value)
    return dict(sorted(importance.items(), key=lambda item: item[1], reverse=True))


def _training_history(value: Any) -> dict[str, list[float]]:
    if not isinstance(value, Mapping):
        return {}
    history: dict[str, list[float]] = {}
    for key, raw in value.items():
        series = as_series(raw)
        if series is not None:
            history[str(key)] = series
    return history


def _optional_block(value: Any) -> dict[str, Any] | None:
    return dict(value) if isinstance(value, Mapping) else None


def _model_type(data: Mapping[str, Any], default: str | None = None) -> str | None:
    value = data.get("model_type")
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return default


def _is_category_payload(data: Mapping[str, Any]) -> bool:
    return isinstance(data.get("categories"), list) and isinstance(data.get("category_results"), Mapping)


def _constituent_rmse(info: Any) -> float | None:
    if not isinstance(info, Mapping) or not info.get("model", True):
        return None
    direct = coerce_metric(info.get("validation_rmse"))
    if direct is not None:
        return direct
    splits = fold_split_metrics(info.get("metrics"))
    validation = splits.get("validation")
    return validation.rmse if validation is not None else None


def _ensemble_weighting(
    data: Mapping[str, Any],
    *,
    exclusion_ratio: float,
    best_weight_floor: float,
) -> tuple[EnsembleWeighting | None, list[str]]:
    models_info = data.get("ensemble_models")
    models_info = models_info if isinstance(models_info, Mapping) else None
    raw_weights = data.get("weights")

    if isinstance(raw_weights, Mapping):
        names = list(ENSEMBLE_CONSTITUENTS) + [str(name) for name in raw_weights if name not in ENSEMBLE_CONSTITUENTS]
        weights: dict[str, float] = {}
        statuses: dict[str, ConstituentStatus] = {}
        notes: list[str] = []
        dropped = 0.0
        for name in names:
            weight = coerce_metric(raw_weights.get(name))
            weights[name] = weight if weight is not None else 0.0
            trained = True
            if models_info is not None:
                info = models_info.get(name)
                trained = isinstance(info, Mapping) and bool(info.get("model"))
            if not trained:
                statuses[name] = ConstituentStatus.FAILED
                dropped += weights[name]
                weights[name] = 0.0
            elif weights[name] > 0.0:
                statuses[name] = ConstituentStatus.WEIGHTED
            else:
                statuses[name] = ConstituentStatus.EXCLUDED
        remaining = sum(weights.values())
        if dropped > 0.0 and remaining > 0.0:
            weights = {name: value / remaining for name, value in weights.items()}
            notes.append("weights of failed ensemble constituents were dropped and the rest renormalized")
        positive = {name: value for name, value in weights.items() if value > 0.0}
        best = max(positive, key=lambda name: positive[name]) if positive else None
        rmse = {name: _constituent_rmse(models_info.get(name)) for name in names} if models_info else {}
        return EnsembleWeighting(weights=weights, statuses=statuses, best_model=best, validation_rmse=rmse), notes

    if models_info is not None:
        rmse_by_model = {name: _constituent_rmse(models_info.get(name)) for name in ENSEMBLE_CONSTITUENTS}
        if any(value is not None for value in rmse_by_model.values()):
            weighting = resolve_ensemble_weights(
                rmse_by_model,
                exclusion_ratio=exclusion_ratio,
                best_weight_floor=best_weight_floor,
            )
            return weighting, ["ensemble weights resolved locally from constituent validation RMSE"]

    return None, ["ensemble payload carried no weights and no constituent validation RMSE"]


def _single_result(
    data: Mapping[str, Any],
    *,
    default_model_type: str | None,
    exclusion_ratio: float,
    best_weight_floor: float,
) -> TrainingResult:
    model_type = _model_type(data, default_model_type)
    family = family_for_model_type(model_type)
    metrics = data.get("metrics")
    diagnostics: list[str] = []

    common: dict[str, Any] = {
        "model_type": model_type,
        "family": family,
        "feature_importance": _feature_importance(data.get("feature_importance")),
        "training_history": _training_history(data.get("training_history")),
        "cross_validation": _optional_block(data.get("cross_validation")),
        "leakage_check": _optional_block(data.get("leakage_check")),
        "predictions": as_series(data.get("predictions")),
        "model_name": str(data["model_name"]) if data.get("model_name") else None,
        "raw": dict(data),
    }

    has_metrics = isinstance(metrics, Mapping) and bool(metrics)
    if not has_metrics and model_type != "ensemble":
        return TrainingResult(
            shape=ResultShape.EMPTY,
            splits=SplitMetrics(),
            diagnostics=(UNRECOGNIZED_PAYLOAD,),
            **common,
        )

    metrics = metrics if isinstance(metrics, Mapping) else {}
    splits = fold_split_metrics(metrics)
    ensemble: EnsembleWeighting | None = None

    if isinstance(metrics.get("train"), Mapping) and isinstance(metrics.get("validation"), Mapping):
        shape = ResultShape.RECURRENT
    elif model_type == "ensemble":
        shape = ResultShape.ENSEMBLE
        if "train" in splits:
            diagnostics.append("ensemble payload carried a train split; it was dropped")
            splits = splits.without("train")
        if "validation" not in splits and "test" not in splits:
            diagnostics.append("ensemble payload has no validation or test split")
        ensemble, notes = _ensemble_weighting(
            data,
            exclusion_ratio=exclusion_ratio,
            best_weight_floor=best_weight_floor,
        )
        diagnostics.extend(notes)
    else:
        shape = ResultShape.FLAT

    if not splits and shape is not ResultShape.ENSEMBLE:
        diagnostics.append("metrics block present but no usable metric values")

    return TrainingResult(shape=shape, splits=splits, ensemble=ensemble, diagnostics=tuple(diagnostics), **common)


def _category_outcome(
    category: str,
    payload: Any,
    *,
    model_type: str | None,
    exclusion_ratio: float,
    best_weight_floor: float,
) -> CategoryOutcome:
    if not isinstance(payload, Mapping):
        return CategoryFailure(category=category, error="no result returned for category")
    if payload.get("error"):
        rows = payload.get("rows")
        return CategoryFailure(
            category=category,
            error=str(payload["error"]),
            rows=int(rows) if isinstance(rows, int) and not isinstance(rows, bool) else None,
        )
    if _is_category_payload(payload):
        return CategoryFailure(category=category, error="nested category partitioning is not supported")
    return _single_result(
        payload,
        default_model_type=model_type,
        exclusion_ratio=exclusion_ratio,
        best_weight_floor=best_weight_floor,
    )


def _category_result(
    data: Mapping[str, Any],
    *,
    exclusion_ratio: float,
    best_weight_floor: float,
) -> CategoryPartitionedResult:
    model_type = _model_type(data)
    categories = tuple(str(category) for category in data["categories"])
    raw_results = {str(key): value for key, value in data["category_results"].items()}

    outcomes: dict[str, CategoryOutcome] = {
        category: _category_outcome(
            category,
            raw_results.get(category),
            model_type=model_type,
            exclusion_ratio=exclusion_ratio,
            best_weight_floor=best_weight_floor,
        )
        for category in categories
    }

    aggregated_metrics = data.get("aggregated_metrics")
    aggregated_metrics = aggregated_metrics if isinstance(aggregated_metrics, Mapping) else {}
    aggregated_payload: dict[str, Any] = {"model_type": model_type, "metrics": dict(aggregated_metrics)}
    reported_predictions = data.get("aggregated_predictions", data.get("predictions"))
    if reported_predictions is not None:
        aggregated_payload["predictions"] = reported_predictions
    aggregated = _single_result(
        aggregated_payload,
        default_model_type=model_type,
        exclusion_ratio=exclusion_ratio,
        best_weight_floor=best_weight_floor,
    )

    series_by_category = {
        category: outcome.predictions for category, outcome in outcomes.items() if isinstance(outcome, TrainingResult)
    }
    predictions, aggregation_notes = reconcile_aggregate(
        aggregated.predictions,
        series_by_category,
        expected_categories=categories,
    )
    aggregated = replace(aggregated, predictions=predictions)

    successful = sum(1 for outcome in outcomes.values() if isinstance(outcome, TrainingResult))
    failed = len(outcomes) - successful
    diagnostics = list(aggregation_notes)
    reported_failed = data.get("failed_categories")
    if isinstance(reported_failed, int) and reported_failed != failed:
        diagnostics.append(f"backend reported {reported_failed} failed categories, payload shows {failed}")

    return CategoryPartitionedResult(
        model_type=model_type,
        category_column=str(data["category_column"]) if data.get("category_column") else None,
        categories=categories,
        category_results=outcomes,
        aggregated=aggregated,
        overall_accuracy=coerce_metric(aggregated_metrics.get("overall_accuracy")),
        total_categories=len(categories),
        successful_categories=successful,
        failed_categories=failed,
        diagnostics=tuple(diagnostics),
    )


def normalize_training_result(
    raw: Any,
    *,
    exclusion_ratio: float = DEFAULT_EXCLUSION_RATIO,
    best_weight_floor: float = DEFAULT_BEST_WEIGHT_FLOOR,
) -> TrainingResult | CategoryPartitionedResult:
    """Normalize any supported training payload; never raises for missing or malformed fields."""

    data = unwrap_envelope(raw)
    if data is None:
        LOGGER.warning("training payload is not a mapping type=%s", type(raw).__name__)
        return TrainingResult(
            model_type=None,
            family=None,
            shape=ResultShape.EMPTY,
            splits=SplitMetrics(),
            diagnostics=(UNRECOGNIZED_PAYLOAD,),
            raw={"payload": raw},
        )

    if _is_category_payload(data):
        result = _category_result(data, exclusion_ratio=exclusion_ratio, best_weight_floor=best_weight_floor)
        LOGGER.info(
            "normalized category result model_type=%s categories=%s failed=%s",
            result.model_type,
            result.total_categories,
            result.failed_categories,
        )
        return result

    single = _single_result(
        data,
        default_model_type=None,
        exclusion_ratio=exclusion_ratio,
        best_weight_floor=best_weight_floor,
    )
    LOGGER.info(
        "normalized training result model_type=%s shape=%s splits=%s",
        single.model_type,
        single.shape.value,
        single.splits.names(),
    )
    return single
