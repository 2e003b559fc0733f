# This file validates user input for the upload, train, and forecast stages before any remote call.
# It exists so every rejected input produces one clear message instead of a backend error several seconds later.
# Training requests also carry per-family default hyperparameters that the user may override.

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from src.results.metric_record import ModelFamily, family_for_model_type

DEFAULT_SPLIT: tuple[float, float, float] = (0.6, 0.2, 0.2)
DEFAULT_SPLIT_TOLERANCE = 0.01
DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = (".csv", ".xlsx", ".xls", ".json")
DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024

DEFAULT_MODEL_PARAMS: dict[ModelFamily, dict[str, Any]] = {
    ModelFamily.AUTOREGRESSIVE: {"order": [1, 1, 1]},
    ModelFamily.SEASONAL_AUTOREGRESSIVE: {"order": [1, 1, 1], "seasonal_order": [1, 1, 1, 12]},
    ModelFamily.RECURRENT_NETWORK: {
        "sequence_length": 30,
        "lstm_units": 50,
        "epochs": 50,
        "batch_size": 32,
        "dropout_rate": 0.2,
        "recurrent_dropout": 0.0,
        "l1_reg": 0.0,
        "l2_reg": 0.0,
        "early_stopping": True,
        "patience": 10,
        "min_delta": 0.0001,
    },
    ModelFamily.GRADIENT_BOOSTED_TREE: {
        "n_estimators": 100,
        "max_depth": 6,
        "learning_rate": 0.1,
        "reg_alpha": 0.0,
        "reg_lambda": 1.0,
    },
    ModelFamily.RANDOM_FOREST: {
        "n_estimators": 100,
        "max_depth": None,
        "min_samples_split": 2,
        "min_samples_leaf": 1,
        "early_stopping": False,
    },
    ModelFamily.SUPPORT_VECTOR_REGRESSOR: {"kernel": "rbf", "C": 1.0, "epsilon": 0.1},
    ModelFamily.EXPONENTIAL_SMOOTHING: {"trend": "add", "seasonal": "add"},
    ModelFamily.ADDITIVE_DECOMPOSITION: {
        "yearly_seasonality": True,
        "weekly_seasonality": True,
        "daily_seasonality": False,
    },
    ModelFamily.ENSEMBLE: {},
}


class RequestValidationError(ValueError):
    """Raised when user input is rejected before it reaches the analytics service."""


def default_model_params(model_type: str) -> dict[str, Any]:
    family = family_for_model_type(model_type)
    if family is None:
        return {}
    return copy.deepcopy(DEFAULT_MODEL_PARAMS.get(family, {}))


def validate_split(
    train_size: float,
    validation_size: float,
    test_size: float,
    *,
    tolerance: float = DEFAULT_SPLIT_TOLERANCE,
) -> None:
    sizes = {"train_size": train_size, "validation_size": validation_size, "test_size": test_size}
    for name, value in sizes.items():
        if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0 or value > 1:
            raise RequestValidationError(f"{name} must be a fraction between 0 and 1")
    if train_size <= 0:
        raise RequestValidationError("train_size must be greater than 0")
    total = train_size + validation_size + test_size
    if abs(total - 1.0) > tolerance:
        raise RequestValidationError(
            f"Train, validation, and test sizes must sum to 1.0 (currently {total:.2f})"
        )


@dataclass(frozen=True)
class TrainingRequest:
    filename: str
    model_type: str
    date_column: str
    target_column: str
    train_size: float = DEFAULT_SPLIT[0]
    validation_size: float = DEFAULT_SPLIT[1]
    test_size: float = DEFAULT_SPLIT[2]
    sheet_name: str | None = None
    category_column: str | None = None
    feature_columns: tuple[str, ...] = ()
    model_params: dict[str, Any] = field(default_factory=dict)
    enable_cross_validation: bool = False
    cv_folds: int = 5
    check_data_leakage: bool = True

    def validate(self, *, split_tolerance: float = DEFAULT_SPLIT_TOLERANCE) -> None:
        if not self.filename:
            raise RequestValidationError("Please upload or choose a dataset first")
        if not self.model_type:
            raise RequestValidationError("Please choose a model type")
        if not self.date_column or not self.target_column:
            raise RequestValidationError("Please select both a date column and a target column")
        if self.category_column:
            if self.category_column == self.date_column:
                raise RequestValidationError("The category column must differ from the date column")
            if self.category_column == self.target_column:
                raise RequestValidationError("The category column must differ from the target column")
        if self.target_column in self.feature_columns:
            raise RequestValidationError("The target column cannot also be a feature column")
        if self.enable_cross_validation and self.cv_folds < 2:
            raise RequestValidationError("Cross-validation needs at least 2 folds")
        validate_split(self.train_size, self.validation_size, self.test_size, tolerance=split_tolerance)

    def to_payload(self) -> dict[str, Any]:
        params = default_model_params(self.model_type)
        params.update(self.model_params)
        payload: dict[str, Any] = {
            "filename": self.filename,
            "model_type": self.model_type,
            "date_column": self.date_column,
            "target_column": self.target_column,
            "train_size": round(self.train_size, 4),
            "validation_size": round(self.validation_size, 4),
            "test_size": round(self.test_size, 4),
            "model_params": params,
            "enable_cross_validation": self.enable_cross_validation,
            "cv_folds": self.cv_folds,
            "check_data_leakage": self.check_data_leakage,
        }
        if self.category_column:
            payload["category_column"] = self.category_column
        if self.sheet_name:
            payload["sheet_name"] = self.sheet_name
        if self.feature_columns:
            payload["feature_columns"] = list(self.feature_columns)
        return payload


@dataclass(frozen=True)
class ForecastRequest:
    model_name: str
    horizon: int | None = None
    start_date: str | None = None
    end_date: str | None = None
    filename: str | None = None
    date_column: str | None = None
    include_confidence: bool = True

    def validate(self) -> None:
        if not self.model_name:
            raise RequestValidationError("Please enter model name")
        if self.horizon is not None:
            if isinstance(self.horizon, bool) or not isinstance(self.horizon, int) or self.horizon < 1:
                raise RequestValidationError("Please enter a valid forecast horizon")
            return
        if not self.start_date or not self.end_date:
            raise RequestValidationError("Please provide a horizon or both start and end dates")
        try:
            start = date.fromisoformat(self.start_date)
            end = date.fromisoformat(self.end_date)
        except ValueError as exc:
            raise RequestValidationError(f"Dates must use YYYY-MM-DD format: {exc}") from exc
        if start >= end:
            raise RequestValidationError("End date must be after start date")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"model_name": self.model_name, "include_confidence": self.include_confidence}
        if self.horizon is not None:
            payload["horizon"] = self.horizon
        else:
            payload["start_date"] = self.start_date
            payload["end_date"] = self.end_date
        if self.filename:
            payload["filename"] = self.filename
        if self.date_column:
            payload["date_column"] = self.date_column
        return payload


def validate_upload_file(
    path: Path,
    *,
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> int:
    """Check extension, presence, and size of a local file; return its size in bytes."""

    path = Path(path)
    if path.suffix.lower() not in allowed_extensions:
        raise RequestValidationError(
            f"Invalid file type. Please upload one of: {', '.join(allowed_extensions)}"
        )
    if not path.is_file():
        raise RequestValidationError(f"File not found: {path}")
    size = path.stat().st_size
    if size == 0:
        raise RequestValidationError("File is empty. Please select a valid file.")
    if size > max_bytes:
        raise RequestValidationError(
            f"File is too large ({size / (1024 * 1024):.2f}MB). Maximum size is {max_bytes / (1024 * 1024):.0f}MB."
        )
    return size
