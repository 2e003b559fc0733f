# This test file validates the analytics API client against expected envelope patterns.
# It exists so request parsing and error handling stay stable as endpoints evolve.
# The tests focus on success payload extraction and clear failure modes.

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import requests

from src.control_panel.api_client import (
    AnalyticsApiClient,
    ApiRejectedError,
    ApiTimeoutError,
    ApiUnavailableError,
)


class _FakeResponse:
    def __init__(self, *, status_code: int, payload: Any = None, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.invalid_json = invalid_json

    def json(self) -> Any:
        if self.invalid_json:
            raise ValueError("not json")
        return self._payload


class _FakeSession:
    def __init__(
        self, responses: list[_FakeResponse] | None = None, raise_error: Exception | None = None
    ) -> None:
        self.responses = responses or []
        self.raise_error = raise_error
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append((method, url, kwargs))
        if self.raise_error is not None:
            raise self.raise_error
        return self.responses.pop(0)


def _client(session: _FakeSession) -> AnalyticsApiClient:
    return AnalyticsApiClient(base_url="http://localhost:8000/api/", session=session)  # type: ignore[arg-type]


def test_eda_summary_unwraps_envelope_and_drops_empty_params() -> None:
    session = _FakeSession(
        responses=[_FakeResponse(status_code=200, payload={"status": "success", "data": {"columns": ["a", "b"]}})]
    )

    data = _client(session).eda_summary("sales.csv", sheet_name=None)

    assert data == {"columns": ["a", "b"]}
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "http://localhost:8000/api/eda/summary")
    assert kwargs["params"] == {"filename": "sales.csv"}
    assert kwargs["timeout"] == 30.0


def test_health_uses_host_root() -> None:
    session = _FakeSession(responses=[_FakeResponse(status_code=200, payload={"status": "healthy"})])

    assert _client(session).health() == {"status": "healthy"}
    assert session.calls[0][1] == "http://localhost:8000/health"


def test_upload_sends_file_with_upload_timeout(tmp_path: Path) -> None:
    source = tmp_path / "sales.csv"
    source.write_text("date,sales\n2024-01-01,3\n", encoding="utf-8")
    session = _FakeSession(
        responses=[
            _FakeResponse(
                status_code=200,
                payload={"status": "success", "data": {"filename": "sales.csv", "column_names": ["date", "sales"]}},
            )
        ]
    )

    data = _client(session).upload_file(source, sheet_name="Sheet1")

    assert data["filename"] == "sales.csv"
    _, url, kwargs = session.calls[0]
    assert url.endswith("/upload-file")
    assert kwargs["timeout"] == 60.0
    assert kwargs["data"] == {"sheet_name": "Sheet1"}
    assert kwargs["files"]["file"][0] == "sales.csv"


def test_rejection_carries_backend_detail() -> None:
    session = _FakeSession(
        responses=[_FakeResponse(status_code=422, payload={"detail": "target_column not found"})]
    )

    with pytest.raises(ApiRejectedError) as excinfo:
        _client(session).train_model({"filename": "x.csv"})

    assert excinfo.value.status_code == 422
    assert excinfo.value.detail == "target_column not found"


def test_error_status_in_body_is_rejected() -> None:
    session = _FakeSession(
        responses=[_FakeResponse(status_code=200, payload={"status": "error", "message": "sheet missing"})]
    )

    with pytest.raises(ApiRejectedError, match="sheet missing"):
        _client(session).preprocess("fix-stationarity", {"filename": "x.csv"})


def test_not_found_is_value_error() -> None:
    session = _FakeSession(responses=[_FakeResponse(status_code=404, payload={"detail": "no file"})])

    with pytest.raises(ValueError):
        _client(session).list_sheets("missing.xlsx")


def test_server_error_and_bad_json_are_unavailable() -> None:
    session = _FakeSession(
        responses=[
            _FakeResponse(status_code=503),
            _FakeResponse(status_code=200, invalid_json=True),
            _FakeResponse(status_code=200, payload=["not", "a", "mapping"]),
        ]
    )
    client = _client(session)

    for _ in range(3):
        with pytest.raises(ApiUnavailableError):
            client.list_models()


def test_transport_errors_map_to_unavailable_and_timeout() -> None:
    with pytest.raises(ApiUnavailableError):
        _client(_FakeSession(raise_error=requests.ConnectionError("api down"))).health()
    with pytest.raises(ApiTimeoutError):
        _client(_FakeSession(raise_error=requests.Timeout("slow"))).health()


def test_list_sheets_and_models() -> None:
    session = _FakeSession(
        responses=[
            _FakeResponse(status_code=200, payload={"status": "success", "sheets": ["S1", "S2"]}),
            _FakeResponse(
                status_code=200,
                payload={"status": "success", "models": [{"name": "m1", "size": 2048, "modified": 1.0}, "junk"]},
            ),
        ]
    )
    client = _client(session)

    assert client.list_sheets("book.xlsx") == ["S1", "S2"]
    assert client.list_models() == [{"name": "m1", "size": 2048, "modified": 1.0}]
