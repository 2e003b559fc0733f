# This module converts raw error metrics into a 0-100 accuracy figure per split.
# It exists so every display site asks one policy table instead of repeating "is the metric defined" checks.
# Two policies are supported: MAPE-only, and R2-preferred with a MAPE fallback.
# A record with no usable metric yields None, which callers render as an omitted element.

from __future__ import annotations

from enum import Enum

from src.results.metric_record import (
    CategoryPartitionedResult,
    MetricRecord,
    ResultShape,
    TrainingResult,
)


class AccuracyPolicy(str, Enum):
    MAPE_ONLY = "mape_only"
    R2_PREFERRED = "r2_preferred"


# Category results (and their aggregate) always use MAPE; every other shape prefers R2.
_POLICY_TABLE: dict[tuple[ResultShape, str], AccuracyPolicy] = {
    (ResultShape.ENSEMBLE, "validation"): AccuracyPolicy.R2_PREFERRED,
    (ResultShape.ENSEMBLE, "test"): AccuracyPolicy.R2_PREFERRED,
    (ResultShape.RECURRENT, "train"): AccuracyPolicy.R2_PREFERRED,
    (ResultShape.RECURRENT, "validation"): AccuracyPolicy.R2_PREFERRED,
    (ResultShape.RECURRENT, "test"): AccuracyPolicy.R2_PREFERRED,
    (ResultShape.FLAT, "train"): AccuracyPolicy.R2_PREFERRED,
    (ResultShape.FLAT, "validation"): AccuracyPolicy.R2_PREFERRED,
    (ResultShape.FLAT, "test"): AccuracyPolicy.R2_PREFERRED,
}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def mape_accuracy(record: MetricRecord) -> float | None:
    if record.mape is None:
        return None
    return _clamp(100.0 - record.mape, 0.0, 100.0)


def r2_accuracy(record: MetricRecord) -> float | None:
    if record.r2 is None:
        return None
    return _clamp(record.r2 * 100.0, 0.0, 100.0)


def derive_accuracy(record: MetricRecord | None, policy: AccuracyPolicy) -> float | None:
    """Return the accuracy percentage for `record` under `policy`, or None when no usable metric exists."""

    if record is None:
        return None
    if policy is AccuracyPolicy.MAPE_ONLY:
        return mape_accuracy(record)
    if policy is AccuracyPolicy.R2_PREFERRED:
        from_r2 = r2_accuracy(record)
        return from_r2 if from_r2 is not None else mape_accuracy(record)
    raise ValueError(f"unknown accuracy policy: {policy!r}")


def accuracy_policy_for(shape: ResultShape, split: str, *, within_category: bool = False) -> AccuracyPolicy:
    if within_category:
        return AccuracyPolicy.MAPE_ONLY
    return _POLICY_TABLE.get((shape, split), AccuracyPolicy.R2_PREFERRED)


def split_accuracies(result: TrainingResult, *, within_category: bool = False) -> dict[str, float | None]:
    return {
        split: derive_accuracy(
            result.splits.get(split),
            accuracy_policy_for(result.shape, split, within_category=within_category),
        )
        for split in result.splits.names()
    }


def category_accuracy_matrix(result: CategoryPartitionedResult) -> dict[str, dict[str, float | None]]:
    """Per-category split accuracies under the MAPE-only policy; failed categories are omitted."""

    return {
        category: split_accuracies(outcome, within_category=True)
        for category, outcome in result.succeeded().items()
    }


def headline_accuracy(result: CategoryPartitionedResult) -> float | None:
    """Overall dataset accuracy: aggregated test MAPE accuracy, else the backend's overall figure."""

    test_record = result.aggregated.splits.get("test")
    from_mape = derive_accuracy(test_record, AccuracyPolicy.MAPE_ONLY)
    if from_mape is not None:
        return from_mape
    return result.overall_accuracy
