# This file is the command-line entry point for driving the control panel core without a UI.
# Each subcommand runs one stage against the configured analytics service and prints the outcome as JSON.
# Notices are printed alongside values so transport and validation problems stay visible from a shell.

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from src.common.logging import configure_logging
from src.control_panel.panel import ControlPanel, PanelOutcome
from src.control_panel.panel_config import load_panel_config


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if hasattr(value, "model_dump"):
        return value.model_dump()
    if hasattr(value, "__dataclass_fields__"):
        return _jsonable(asdict(value))
    return str(value)


def render_outcome(outcome: PanelOutcome[Any]) -> dict[str, Any]:
    return {
        "ok": outcome.ok,
        "value": _jsonable(outcome.value),
        "notices": [
            {"kind": notice.kind.value, "message": notice.message, "retry_suggested": notice.retry_suggested}
            for notice in outcome.notices
        ],
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Forecasting control panel core")
    parser.add_argument("--config-path", default="configs/control_panel.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Check that the analytics service is reachable")
    sub.add_parser("models", help="List trained models")

    upload = sub.add_parser("upload", help="Upload a dataset and print its column schema")
    upload.add_argument("path", type=Path)
    upload.add_argument("--sheet-name", default=None)

    explore = sub.add_parser("explore", help="Upload a dataset and run every analysis section")
    explore.add_argument("path", type=Path)
    explore.add_argument("--sheet-name", default=None)
    explore.add_argument("--date-column", default=None)
    explore.add_argument("--value-column", default=None)
    return parser.parse_args(argv)


async def run_command(panel: ControlPanel, args: argparse.Namespace) -> PanelOutcome[Any]:
    if args.command == "health":
        return await panel.check_health()
    if args.command == "models":
        return await panel.list_models()

    uploaded = await panel.upload(args.path, sheet_name=args.sheet_name)
    if args.command == "upload" or not uploaded.ok:
        return uploaded
    explored = await panel.explore(date_column=args.date_column, value_column=args.value_column)
    return PanelOutcome(explored.value, uploaded.notices + explored.notices)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()
    panel = ControlPanel.from_config(load_panel_config(config_path=args.config_path))
    outcome = asyncio.run(run_command(panel, args))
    print(json.dumps(render_outcome(outcome), indent=2, sort_keys=True, default=str))
    return 0 if outcome.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
