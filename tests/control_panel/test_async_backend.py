# This test file validates the async adapter around the blocking analytics client.
# It exists so slow calls surface as ApiTimeoutError and results pass through unchanged.

from __future__ import annotations

import asyncio
import threading
from typing import Any

import pytest

from src.control_panel.api_client import ApiTimeoutError, ApiUnavailableError
from src.control_panel.async_backend import AsyncAnalyticsBackend


class _FakeClient:
    upload_timeout_seconds = 60.0

    def __init__(self) -> None:
        self.release = threading.Event()
        self.calls: list[tuple[str, Any]] = []

    def eda_summary(self, filename: str, *, sheet_name: str | None = None) -> dict[str, Any]:
        self.calls.append(("eda_summary", (filename, sheet_name)))
        return {"columns": ["a"], "filename": filename}

    def predict(self, body: dict[str, Any]) -> dict[str, Any]:
        self.release.wait(timeout=0.5)
        return {"predictions": [1.0]}

    def list_models(self) -> list[dict[str, Any]]:
        raise ApiUnavailableError("connection refused")


def test_results_pass_through() -> None:
    client = _FakeClient()
    backend = AsyncAnalyticsBackend(client)  # type: ignore[arg-type]

    data = asyncio.run(backend.eda_summary("sales.csv", sheet_name="S1"))

    assert data == {"columns": ["a"], "filename": "sales.csv"}
    assert client.calls == [("eda_summary", ("sales.csv", "S1"))]


def test_fetch_schema_reads_summary() -> None:
    backend = AsyncAnalyticsBackend(_FakeClient())  # type: ignore[arg-type]

    assert asyncio.run(backend.fetch_schema("f.csv"))["columns"] == ["a"]


def test_slow_call_raises_timeout() -> None:
    client = _FakeClient()
    backend = AsyncAnalyticsBackend(client, timeout_seconds=0.05)  # type: ignore[arg-type]

    try:
        with pytest.raises(ApiTimeoutError):
            asyncio.run(backend.predict({"model_name": "m"}))
    finally:
        client.release.set()


def test_client_errors_propagate() -> None:
    backend = AsyncAnalyticsBackend(_FakeClient())  # type: ignore[arg-type]

    with pytest.raises(ApiUnavailableError):
        asyncio.run(backend.list_models())
