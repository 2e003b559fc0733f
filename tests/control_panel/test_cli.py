# This test file validates the command-line entry point of the control panel core.
# It exists so subcommands dispatch to the right stage and outcomes print as JSON with their notices.

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from src.common.notices import Notice
from src.control_panel import cli
from src.control_panel.api_client import ApiUnavailableError
from src.control_panel.panel import ControlPanel, PanelOutcome
from src.control_panel.panel_config import load_panel_config

ROOT_DIR = Path(__file__).resolve().parents[2]
CONFIG_PATH = str(ROOT_DIR / "configs" / "control_panel.yaml")


class _FakeBackend:
    def __init__(self, *, healthy: bool = True) -> None:
        self.healthy = healthy

    async def fetch_schema(self, filename: str, sheet_name: str | None = None) -> dict[str, Any]:
        return {"columns": ["date", "sales"]}

    async def health(self) -> dict[str, Any]:
        if not self.healthy:
            raise ApiUnavailableError("connection refused")
        return {"status": "healthy"}

    async def list_models(self) -> list[dict[str, Any]]:
        return [{"name": "arima_sales", "size": 1024}]


def _install_panel(monkeypatch: pytest.MonkeyPatch, backend: _FakeBackend) -> None:
    def _from_config(config: Any) -> ControlPanel:
        return ControlPanel(backend, config)  # type: ignore[arg-type]

    monkeypatch.setattr(cli.ControlPanel, "from_config", staticmethod(_from_config))


def test_parse_args_reads_explore_options() -> None:
    args = cli.parse_args(["explore", "sales.csv", "--date-column", "date", "--value-column", "sales"])

    assert args.command == "explore"
    assert args.path == Path("sales.csv")
    assert args.value_column == "sales"
    assert args.config_path == "configs/control_panel.yaml"


def test_render_outcome_lists_notices() -> None:
    rendered = cli.render_outcome(PanelOutcome(None, (Notice.transport("down"),)))

    assert rendered == {
        "ok": False,
        "value": None,
        "notices": [{"kind": "transport", "message": "down", "retry_suggested": True}],
    }


def test_main_health_prints_json(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _install_panel(monkeypatch, _FakeBackend())

    code = cli.main(["--config-path", CONFIG_PATH, "health"])

    printed = json.loads(capsys.readouterr().out)
    assert code == 0
    assert printed["value"] == {"status": "healthy"}


def test_main_unreachable_backend_exits_nonzero(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _install_panel(monkeypatch, _FakeBackend(healthy=False))

    code = cli.main(["--config-path", CONFIG_PATH, "health"])

    printed = json.loads(capsys.readouterr().out)
    assert code == 1
    assert printed["notices"][0]["kind"] == "transport"


def test_main_models_serializes_pydantic_values(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _install_panel(monkeypatch, _FakeBackend())

    cli.main(["--config-path", CONFIG_PATH, "models"])

    printed = json.loads(capsys.readouterr().out)
    assert printed["value"] == [{"name": "arima_sales", "size": 1024, "modified": None}]


def test_config_file_loads_with_defaults() -> None:
    config = load_panel_config(config_path=CONFIG_PATH)

    assert config.api_base_url == "http://localhost:8000/api"
