# This file normalizes a saved training response and prints what the panel would show for it.
# It exists so odd backend payloads can be diagnosed without starting the panel.
# Output is JSON: result shape, split accuracies, ensemble weights, category headline, and diagnostics.
# ruff: noqa: E402

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from src.common.logging import configure_logging
from src.results.accuracy import category_accuracy_matrix, headline_accuracy, split_accuracies
from src.results.ensemble_weighting import DEFAULT_BEST_WEIGHT_FLOOR, DEFAULT_EXCLUSION_RATIO
from src.results.metric_record import CategoryPartitionedResult, TrainingResult
from src.results.normalizer import normalize_training_result


def _describe_single(result: TrainingResult) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "model_type": result.model_type,
        "family": result.family.value if result.family else None,
        "shape": result.shape.value,
        "metrics": result.splits.to_dict(),
        "accuracy": split_accuracies(result),
        "diagnostics": list(result.diagnostics),
    }
    if result.ensemble is not None:
        summary["ensemble"] = {
            "weights": dict(result.ensemble.weights),
            "statuses": {name: status.value for name, status in result.ensemble.statuses.items()},
            "best_model": result.ensemble.best_model,
        }
    if result.feature_importance:
        summary["top_features"] = list(result.feature_importance)[:10]
    return summary


def _describe_categories(result: CategoryPartitionedResult) -> dict[str, Any]:
    return {
        "model_type": result.model_type,
        "category_column": result.category_column,
        "categories": list(result.categories),
        "headline_accuracy": headline_accuracy(result),
        "category_accuracy": category_accuracy_matrix(result),
        "failures": [
            {"category": failure.category, "error": failure.error, "rows": failure.rows}
            for failure in result.failures()
        ],
        "aggregated": _describe_single(result.aggregated),
        "diagnostics": list(result.diagnostics),
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Normalize a saved training response and print its accuracy view")
    parser.add_argument("payload", type=Path, help="JSON file holding the /train/model response")
    parser.add_argument("--exclusion-ratio", type=float, default=DEFAULT_EXCLUSION_RATIO)
    parser.add_argument("--best-weight-floor", type=float, default=DEFAULT_BEST_WEIGHT_FLOOR)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    configure_logging(level="INFO" if args.verbose else "WARNING")

    try:
        raw = json.loads(args.payload.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Could not read {args.payload}: {exc}", file=sys.stderr)
        return 2

    result = normalize_training_result(
        raw,
        exclusion_ratio=args.exclusion_ratio,
        best_weight_floor=args.best_weight_floor,
    )
    if isinstance(result, CategoryPartitionedResult):
        summary = _describe_categories(result)
    else:
        summary = _describe_single(result)
    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
