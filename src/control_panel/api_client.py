# This file implements the blocking HTTP client for the remote analytics service.
# It exists so panel stages call named endpoints without embedding request details everywhere.
# The client unwraps the {status, data} envelope and converts every failure into one small exception family.
# Transport problems, server errors, and malformed JSON are "unavailable"; 4xx and status != success are "rejected".

from __future__ import annotations

from pathlib import Path
from typing import Any

import requests


class ApiUnavailableError(RuntimeError):
    """Raised when the API cannot be reached or responds with server errors."""


class ApiTimeoutError(ApiUnavailableError):
    """Raised when a call does not complete within its time budget."""


class ApiRejectedError(ValueError):
    """Raised when the API answered but refused the request."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


def _error_detail(response: requests.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        for key in ("detail", "message", "error"):
            if payload.get(key):
                return str(payload[key])
    return None


class AnalyticsApiClient:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 30.0,
        upload_timeout_seconds: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.upload_timeout_seconds = upload_timeout_seconds
        self.session = session or requests.Session()

    @property
    def root_url(self) -> str:
        if self.base_url.endswith("/api"):
            return self.base_url[: -len("/api")]
        return self.base_url

    def health(self) -> dict[str, Any]:
        return self._request_json("GET", f"{self.root_url}/health", require_success=False)

    def upload_file(self, path: Path, *, sheet_name: str | None = None) -> dict[str, Any]:
        data = {"sheet_name": sheet_name} if sheet_name else None
        with Path(path).open("rb") as handle:
            payload = self._request_json(
                "POST",
                f"{self.base_url}/upload-file",
                files={"file": (Path(path).name, handle)},
                data=data,
                timeout=self.upload_timeout_seconds,
            )
        return _data_of(payload)

    def list_sheets(self, filename: str) -> list[str]:
        payload = self._request_json("GET", f"{self.base_url}/list-sheets", params={"filename": filename})
        sheets = payload.get("sheets")
        if sheets is None:
            sheets = _data_of(payload).get("sheets", [])
        return [str(sheet) for sheet in sheets or []]

    def eda_summary(self, filename: str, *, sheet_name: str | None = None) -> dict[str, Any]:
        return self._eda("summary", {"filename": filename, "sheet_name": sheet_name})

    def eda_correlation(
        self, filename: str, *, sheet_name: str | None = None, method: str = "pearson"
    ) -> dict[str, Any]:
        return self._eda("correlation", {"filename": filename, "sheet_name": sheet_name, "method": method})

    def eda_stationarity(
        self, filename: str, *, value_column: str, date_column: str | None = None, sheet_name: str | None = None
    ) -> dict[str, Any]:
        return self._eda(
            "stationarity",
            {
                "filename": filename,
                "value_column": value_column,
                "date_column": date_column,
                "sheet_name": sheet_name,
            },
        )

    def eda_seasonality(
        self, filename: str, *, date_column: str, value_column: str, sheet_name: str | None = None
    ) -> dict[str, Any]:
        return self._eda(
            "seasonality",
            {
                "filename": filename,
                "date_column": date_column,
                "value_column": value_column,
                "sheet_name": sheet_name,
            },
        )

    def eda_plots(
        self,
        filename: str,
        *,
        date_column: str | None = None,
        value_column: str | None = None,
        sheet_name: str | None = None,
    ) -> dict[str, Any]:
        return self._eda(
            "plots",
            {
                "filename": filename,
                "date_column": date_column,
                "value_column": value_column,
                "sheet_name": sheet_name,
            },
        )

    def preprocess(self, operation: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST to /preprocess/<operation> and return the whole response body."""

        return self._request_json("POST", f"{self.base_url}/preprocess/{operation}", json=body)

    def train_model(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._request_json("POST", f"{self.base_url}/train/model", json=body)

    def predict(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._request_json("POST", f"{self.base_url}/forecast/predict", json=body)

    def list_models(self) -> list[dict[str, Any]]:
        payload = self._request_json("GET", f"{self.base_url}/train/list-models")
        models = payload.get("models")
        return [dict(model) for model in models or [] if isinstance(model, dict)]

    def _eda(self, section: str, params: dict[str, Any]) -> dict[str, Any]:
        clean = {key: value for key, value in params.items() if value not in (None, "")}
        return _data_of(self._request_json("GET", f"{self.base_url}/eda/{section}", params=clean))

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        require_success: bool = True,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            response = self.session.request(method, url, timeout=timeout or self.timeout_seconds, **kwargs)
        except requests.Timeout as exc:
            raise ApiTimeoutError(f"API request timed out for {url}: {exc}") from exc
        except requests.RequestException as exc:
            raise ApiUnavailableError(f"API request failed for {url}: {exc}") from exc

        if response.status_code >= 500:
            raise ApiUnavailableError(f"API request failed with status {response.status_code} for {url}")
        if response.status_code == 404:
            raise ApiRejectedError(
                f"Endpoint returned 404 for {url}", status_code=404, detail=_error_detail(response)
            )
        if response.status_code >= 400:
            detail = _error_detail(response)
            raise ApiRejectedError(
                f"API request was rejected with status {response.status_code} for {url}: {detail or 'no detail'}",
                status_code=response.status_code,
                detail=detail,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiUnavailableError(f"API did not return valid JSON for {url}") from exc

        if not isinstance(payload, dict):
            raise ApiUnavailableError(f"Unexpected payload shape from {url}")
        if require_success and "status" in payload and payload["status"] != "success":
            detail = str(payload.get("detail") or payload.get("message") or payload.get("error") or "")
            raise ApiRejectedError(
                f"API reported status={payload['status']} for {url}: {detail or 'no detail'}",
                status_code=response.status_code,
                detail=detail or None,
            )
        return payload


def _data_of(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    return dict(data) if isinstance(data, dict) else dict(payload)
