# This file defines runtime configuration for the control panel core.
# The loader merges YAML defaults with CONTROL_PANEL_* environment overrides and validates the result.
# Timeouts, upload limits, split tolerance, and ensemble weighting policy all come from here.

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import yaml

VALID_CORRELATION_METHODS = {"pearson", "spearman", "kendall"}


def _load_yaml(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config at {path} must be a mapping, got: {type(loaded).__name__}")
    return dict(loaded)


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value


def _env_float(name: str, default: float | None = None) -> float | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _env_int(name: str, default: int | None = None) -> int | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class PanelConfig:
    api_base_url: str

    request_timeout_seconds: float
    upload_timeout_seconds: float
    training_timeout_seconds: float
    schema_refresh_timeout_seconds: float
    analysis_timeout_seconds: float

    max_upload_mb: int
    allowed_extensions: tuple[str, ...]

    split_tolerance: float
    default_split: tuple[float, float, float]

    ensemble_exclusion_ratio: float
    ensemble_best_weight_floor: float

    correlation_method: str

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def to_dict(self) -> dict[str, Any]:
        return {
            "api_base_url": self.api_base_url,
            "request_timeout_seconds": self.request_timeout_seconds,
            "upload_timeout_seconds": self.upload_timeout_seconds,
            "training_timeout_seconds": self.training_timeout_seconds,
            "schema_refresh_timeout_seconds": self.schema_refresh_timeout_seconds,
            "analysis_timeout_seconds": self.analysis_timeout_seconds,
            "max_upload_mb": self.max_upload_mb,
            "allowed_extensions": list(self.allowed_extensions),
            "split_tolerance": self.split_tolerance,
            "default_split": list(self.default_split),
            "ensemble_exclusion_ratio": self.ensemble_exclusion_ratio,
            "ensemble_best_weight_floor": self.ensemble_best_weight_floor,
            "correlation_method": self.correlation_method,
        }


def load_panel_config(*, config_path: str = "configs/control_panel.yaml") -> PanelConfig:
    cfg = _load_yaml(config_path)
    timeouts_cfg = dict(cfg.get("timeouts", {}))
    upload_cfg = dict(cfg.get("upload", {}))
    training_cfg = dict(cfg.get("training", {}))
    ensemble_cfg = dict(cfg.get("ensemble", {}))
    analysis_cfg = dict(cfg.get("analysis", {}))

    api_base_url = str(
        _env_str(
            "CONTROL_PANEL_API_BASE_URL",
            _env_str("ANALYTICS_API_URL", str(cfg.get("api_base_url", "http://localhost:8000/api"))),
        )
    )

    request_timeout_seconds = float(
        _env_float("CONTROL_PANEL_REQUEST_TIMEOUT_SECONDS", float(timeouts_cfg.get("request_seconds", 30)))
    )
    upload_timeout_seconds = float(
        _env_float("CONTROL_PANEL_UPLOAD_TIMEOUT_SECONDS", float(timeouts_cfg.get("upload_seconds", 60)))
    )
    training_timeout_seconds = float(
        _env_float("CONTROL_PANEL_TRAINING_TIMEOUT_SECONDS", float(timeouts_cfg.get("training_seconds", 600)))
    )
    schema_refresh_timeout_seconds = float(
        _env_float(
            "CONTROL_PANEL_SCHEMA_REFRESH_TIMEOUT_SECONDS", float(timeouts_cfg.get("schema_refresh_seconds", 30))
        )
    )
    analysis_timeout_seconds = float(
        _env_float("CONTROL_PANEL_ANALYSIS_TIMEOUT_SECONDS", float(timeouts_cfg.get("analysis_seconds", 30)))
    )

    max_upload_mb = int(_env_int("CONTROL_PANEL_MAX_UPLOAD_MB", int(upload_cfg.get("max_size_mb", 100))))
    allowed_extensions = tuple(
        ext.lower() if ext.startswith(".") else f".{ext.lower()}"
        for ext in _env_list(
            "CONTROL_PANEL_ALLOWED_EXTENSIONS",
            [str(item) for item in upload_cfg.get("allowed_extensions", [".csv", ".xlsx", ".xls", ".json"])],
        )
    )

    split_tolerance = float(
        _env_float("CONTROL_PANEL_SPLIT_TOLERANCE", float(training_cfg.get("split_tolerance", 0.01)))
    )
    raw_split = [float(item) for item in training_cfg.get("default_split", [0.6, 0.2, 0.2])]

    ensemble_exclusion_ratio = float(
        _env_float("CONTROL_PANEL_ENSEMBLE_EXCLUSION_RATIO", float(ensemble_cfg.get("exclusion_ratio", 1.35)))
    )
    ensemble_best_weight_floor = float(
        _env_float("CONTROL_PANEL_ENSEMBLE_BEST_WEIGHT_FLOOR", float(ensemble_cfg.get("best_weight_floor", 0.80)))
    )

    correlation_method = str(
        _env_str("CONTROL_PANEL_CORRELATION_METHOD", str(analysis_cfg.get("correlation_method", "pearson")))
    ).lower()

    if not api_base_url.startswith(("http://", "https://")):
        raise ValueError(f"api_base_url must be an http(s) URL, got: {api_base_url!r}")
    for name, value in (
        ("request_timeout_seconds", request_timeout_seconds),
        ("upload_timeout_seconds", upload_timeout_seconds),
        ("training_timeout_seconds", training_timeout_seconds),
        ("schema_refresh_timeout_seconds", schema_refresh_timeout_seconds),
        ("analysis_timeout_seconds", analysis_timeout_seconds),
    ):
        if value <= 0:
            raise ValueError(f"{name} must be > 0")
    if max_upload_mb <= 0:
        raise ValueError("max_upload_mb must be > 0")
    if not allowed_extensions:
        raise ValueError("allowed_extensions must not be empty")
    if not (0 <= split_tolerance < 0.5):
        raise ValueError("split_tolerance must be in [0, 0.5)")
    if len(raw_split) != 3 or any(value < 0 for value in raw_split):
        raise ValueError("default_split must hold three nonnegative fractions")
    if abs(sum(raw_split) - 1.0) > split_tolerance:
        raise ValueError("default_split must sum to 1.0")
    if ensemble_exclusion_ratio < 1:
        raise ValueError("ensemble exclusion_ratio must be >= 1")
    if not (0 < ensemble_best_weight_floor <= 1):
        raise ValueError("ensemble best_weight_floor must be in (0, 1]")
    if correlation_method not in VALID_CORRELATION_METHODS:
        raise ValueError(
            f"correlation_method must be one of {sorted(VALID_CORRELATION_METHODS)}, got {correlation_method}"
        )

    return PanelConfig(
        api_base_url=api_base_url,
        request_timeout_seconds=request_timeout_seconds,
        upload_timeout_seconds=upload_timeout_seconds,
        training_timeout_seconds=training_timeout_seconds,
        schema_refresh_timeout_seconds=schema_refresh_timeout_seconds,
        analysis_timeout_seconds=analysis_timeout_seconds,
        max_upload_mb=max_upload_mb,
        allowed_extensions=allowed_extensions,
        split_tolerance=split_tolerance,
        default_split=(raw_split[0], raw_split[1], raw_split[2]),
        ensemble_exclusion_ratio=ensemble_exclusion_ratio,
        ensemble_best_weight_floor=ensemble_best_weight_floor,
        correlation_method=correlation_method,
    )
