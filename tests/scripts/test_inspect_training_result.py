# This test file validates the offline training-payload inspection script.
# It exists so saved responses can be diagnosed from a shell with the same normalization the panel uses.

from __future__ import annotations

import importlib.util
import json
from pathlib import Path
from types import ModuleType

import pytest

ROOT_DIR = Path(__file__).resolve().parents[2]


def _load_script() -> ModuleType:
    path = ROOT_DIR / "scripts" / "inspect_training_result.py"
    spec = importlib.util.spec_from_file_location("inspect_training_result", path)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_prints_flat_result_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    payload = tmp_path / "train.json"
    payload.write_text(
        json.dumps({"status": "success", "data": {"model_type": "xgboost", "metrics": {"test_r2": 0.75}}}),
        encoding="utf-8",
    )

    code = _load_script().main([str(payload)])

    summary = json.loads(capsys.readouterr().out)
    assert code == 0
    assert summary["shape"] == "flat"
    assert summary["family"] == "gradient_boosted_tree"
    assert summary["accuracy"]["test"] == pytest.approx(75.0)


def test_prints_category_failures(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    payload = tmp_path / "train.json"
    payload.write_text(
        json.dumps(
            {
                "model_type": "prophet",
                "categories": ["north", "south"],
                "category_results": {
                    "north": {"metrics": {"test_mape": 20.0}},
                    "south": {"error": "not enough rows", "rows": 4},
                },
            }
        ),
        encoding="utf-8",
    )

    _load_script().main([str(payload)])

    summary = json.loads(capsys.readouterr().out)
    assert summary["categories"] == ["north", "south"]
    assert summary["failures"] == [{"category": "south", "error": "not enough rows", "rows": 4}]


def test_unreadable_payload_returns_error_code(tmp_path: Path) -> None:
    payload = tmp_path / "broken.json"
    payload.write_text("{not json", encoding="utf-8")

    assert _load_script().main([str(payload)]) == 2
