"""
Inverse-RMSE blend weights for the three-model ensemble.
Constituents above the exclusion ratio are dropped, and the best model keeps a guaranteed floor share.
Models that failed to train are reported as failed rather than silently down-weighted.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from src.results.metric_record import ConstituentStatus, EnsembleWeighting, coerce_metric

LOGGER = logging.getLogger("results")

ENSEMBLE_CONSTITUENTS: tuple[str, ...] = ("prophet", "sarimax", "gbm")
DEFAULT_EXCLUSION_RATIO = 1.35
DEFAULT_BEST_WEIGHT_FLOOR = 0.80


def _inverse_weights(kept: dict[str, float]) -> dict[str, float]:
    zero_error = [name for name, value in kept.items() if value == 0.0]
    if zero_error:
        share = 1.0 / len(zero_error)
        return {name: (share if name in zero_error else 0.0) for name in kept}
    raw = {name: 1.0 / value for name, value in kept.items()}
    total = sum(raw.values())
    return {name: value / total for name, value in raw.items()}


def _apply_best_floor(weights: dict[str, float], best: str, floor: float) -> dict[str, float]:
    if len(weights) == 1:
        return {best: 1.0}
    if weights[best] >= floor:
        return weights

    others_total = sum(value for name, value in weights.items() if name != best)
    remainder = 1.0 - floor
    floored = {best: floor}
    for name, value in weights.items():
        if name == best:
            continue
        floored[name] = remainder * value / others_total if others_total > 0 else 0.0
    return floored


def resolve_ensemble_weights(
    validation_rmse: Mapping[str, float | None],
    *,
    constituents: tuple[str, ...] = ENSEMBLE_CONSTITUENTS,
    exclusion_ratio: float = DEFAULT_EXCLUSION_RATIO,
    best_weight_floor: float = DEFAULT_BEST_WEIGHT_FLOOR,
) -> EnsembleWeighting:
    if exclusion_ratio < 1.0:
        raise ValueError("exclusion_ratio must be >= 1.0")
    if not (0.0 < best_weight_floor <= 1.0):
        raise ValueError("best_weight_floor must be in (0, 1]")

    names = list(constituents) + [name for name in validation_rmse if name not in constituents]
    rmse: dict[str, float | None] = {}
    for name in names:
        value = coerce_metric(validation_rmse.get(name))
        rmse[name] = value if value is not None and value >= 0.0 else None

    statuses: dict[str, ConstituentStatus] = {}
    weights = {name: 0.0 for name in names}
    successful = {name: value for name, value in rmse.items() if value is not None}
    for name in names:
        if name not in successful:
            statuses[name] = ConstituentStatus.FAILED

    if not successful:
        LOGGER.warning("ensemble weighting found no successful constituents models=%s", names)
        return EnsembleWeighting(weights=weights, statuses=statuses, best_model=None, validation_rmse=rmse)

    best = min(successful, key=lambda name: successful[name])
    threshold = exclusion_ratio * successful[best]
    kept: dict[str, float] = {}
    for name, value in successful.items():
        if value > threshold:
            statuses[name] = ConstituentStatus.EXCLUDED
        else:
            statuses[name] = ConstituentStatus.WEIGHTED
            kept[name] = value

    normalized = _apply_best_floor(_inverse_weights(kept), best, best_weight_floor)
    weights.update(normalized)
    LOGGER.info(
        "ensemble weights resolved best=%s weights=%s excluded=%s",
        best,
        {name: round(value, 4) for name, value in weights.items()},
        [name for name, status in statuses.items() if status is ConstituentStatus.EXCLUDED],
    )
    return EnsembleWeighting(
        weights=weights,
        statuses={name: statuses[name] for name in names},
        best_model=best,
        validation_rmse=rmse,
    )
