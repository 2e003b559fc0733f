# This module defines the canonical result shapes every training payload is normalized into.
# It exists so display code reads one accuracy model instead of probing eight backend result formats.
# Metric fields that are absent or numerically invalid stay None and are never folded to zero.
# The dataclasses are frozen so normalized results can be shared between UI collaborators safely.

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

SPLIT_NAMES: tuple[str, ...] = ("train", "validation", "test")
METRIC_FIELDS: tuple[str, ...] = ("mae", "rmse", "r2", "mape", "aic", "bic")


class ModelFamily(str, Enum):
    AUTOREGRESSIVE = "autoregressive"
    SEASONAL_AUTOREGRESSIVE = "seasonal_autoregressive"
    RECURRENT_NETWORK = "recurrent_network"
    GRADIENT_BOOSTED_TREE = "gradient_boosted_tree"
    RANDOM_FOREST = "random_forest"
    SUPPORT_VECTOR_REGRESSOR = "support_vector_regressor"
    EXPONENTIAL_SMOOTHING = "exponential_smoothing"
    ADDITIVE_DECOMPOSITION = "additive_decomposition"
    ENSEMBLE = "ensemble"


MODEL_TYPE_FAMILIES: dict[str, ModelFamily] = {
    "arima": ModelFamily.AUTOREGRESSIVE,
    "sarima": ModelFamily.SEASONAL_AUTOREGRESSIVE,
    "sarimax": ModelFamily.SEASONAL_AUTOREGRESSIVE,
    "lstm": ModelFamily.RECURRENT_NETWORK,
    "xgboost": ModelFamily.GRADIENT_BOOSTED_TREE,
    "lightgbm": ModelFamily.GRADIENT_BOOSTED_TREE,
    "gbm": ModelFamily.GRADIENT_BOOSTED_TREE,
    "random_forest": ModelFamily.RANDOM_FOREST,
    "svr": ModelFamily.SUPPORT_VECTOR_REGRESSOR,
    "ets": ModelFamily.EXPONENTIAL_SMOOTHING,
    "prophet": ModelFamily.ADDITIVE_DECOMPOSITION,
    "ensemble": ModelFamily.ENSEMBLE,
}


class ResultShape(str, Enum):
    FLAT = "flat"
    RECURRENT = "recurrent"
    ENSEMBLE = "ensemble"
    EMPTY = "empty"


def family_for_model_type(model_type: str | None) -> ModelFamily | None:
    if not model_type:
        return None
    return MODEL_TYPE_FAMILIES.get(str(model_type).strip().lower())


def coerce_metric(value: Any) -> float | None:
    """Return a finite float, or None for missing, non-numeric, NaN, and infinite values."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class MetricRecord:
    mae: float | None = None
    rmse: float | None = None
    r2: float | None = None
    mape: float | None = None
    aic: float | None = None
    bic: float | None = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> MetricRecord:
        if not isinstance(values, Mapping):
            return cls()
        return cls(**{name: coerce_metric(values.get(name)) for name in METRIC_FIELDS})

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, item.name) is None for item in fields(self))

    def merged_with(self, fallback: MetricRecord) -> MetricRecord:
        """Fill this record's missing fields from `fallback`; present values win."""

        return MetricRecord(
            **{
                name: getattr(self, name) if getattr(self, name) is not None else getattr(fallback, name)
                for name in METRIC_FIELDS
            }
        )

    def to_dict(self) -> dict[str, float]:
        values = {name: getattr(self, name) for name in METRIC_FIELDS}
        return {name: value for name, value in values.items() if value is not None}


@dataclass(frozen=True)
class SplitMetrics:
    splits: dict[str, MetricRecord] = field(default_factory=dict)

    def get(self, split: str) -> MetricRecord | None:
        return self.splits.get(split)

    def __contains__(self, split: object) -> bool:
        return split in self.splits

    def __bool__(self) -> bool:
        return bool(self.splits)

    def names(self) -> list[str]:
        return [name for name in SPLIT_NAMES if name in self.splits]

    def without(self, split: str) -> SplitMetrics:
        return SplitMetrics({name: record for name, record in self.splits.items() if name != split})

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {name: self.splits[name].to_dict() for name in self.names()}


class ConstituentStatus(str, Enum):
    WEIGHTED = "weighted"
    EXCLUDED = "excluded"
    FAILED = "failed"


@dataclass(frozen=True)
class EnsembleWeighting:
    weights: dict[str, float]
    statuses: dict[str, ConstituentStatus]
    best_model: str | None
    validation_rmse: dict[str, float | None] = field(default_factory=dict)

    def as_triple(self, order: tuple[str, ...] = ("prophet", "sarimax", "gbm")) -> tuple[float, ...]:
        return tuple(float(self.weights.get(name, 0.0)) for name in order)

    def failed_models(self) -> list[str]:
        return [name for name, status in self.statuses.items() if status is ConstituentStatus.FAILED]


@dataclass(frozen=True)
class TrainingResult:
    model_type: str | None
    family: ModelFamily | None
    shape: ResultShape
    splits: SplitMetrics
    ensemble: EnsembleWeighting | None = None
    feature_importance: dict[str, float] = field(default_factory=dict)
    training_history: dict[str, list[float]] = field(default_factory=dict)
    cross_validation: dict[str, Any] | None = None
    leakage_check: dict[str, Any] | None = None
    predictions: list[float] | None = None
    model_name: str | None = None
    diagnostics: tuple[str, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def has_metrics(self) -> bool:
        return bool(self.splits)


@dataclass(frozen=True)
class CategoryFailure:
    category: str
    error: str
    rows: int | None = None


CategoryOutcome = TrainingResult | CategoryFailure


@dataclass(frozen=True)
class CategoryPartitionedResult:
    model_type: str | None
    category_column: str | None
    categories: tuple[str, ...]
    category_results: dict[str, CategoryOutcome]
    aggregated: TrainingResult
    overall_accuracy: float | None = None
    total_categories: int = 0
    successful_categories: int = 0
    failed_categories: int = 0
    diagnostics: tuple[str, ...] = ()

    def succeeded(self) -> dict[str, TrainingResult]:
        return {
            name: outcome
            for name, outcome in self.category_results.items()
            if isinstance(outcome, TrainingResult)
        }

    def failures(self) -> list[CategoryFailure]:
        return [outcome for outcome in self.category_results.values() if isinstance(outcome, CategoryFailure)]

    @property
    def all_categories_succeeded(self) -> bool:
        return bool(self.categories) and len(self.succeeded()) == len(self.categories)
