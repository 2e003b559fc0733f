# This file adapts the blocking analytics client to the cooperative event loop used by the panel core.
# Each call runs the requests client in a worker thread and is bounded by a timeout.
# A timeout surfaces as ApiTimeoutError so callers handle it with the other transport failures.
# The worker thread itself is not interrupted; callers that care about late results keep their own task.

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from src.control_panel.api_client import AnalyticsApiClient, ApiTimeoutError

LOGGER = logging.getLogger("control_panel")

T = TypeVar("T")


class AsyncAnalyticsBackend:
    def __init__(self, client: AnalyticsApiClient, *, timeout_seconds: float = 30.0) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds

    async def _call(
        self, func: Callable[..., T], *args: Any, timeout: float | None = None, **kwargs: Any
    ) -> T:
        budget = timeout if timeout is not None else self.timeout_seconds
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), timeout=budget)
        except asyncio.TimeoutError as exc:
            LOGGER.warning("backend call timed out call=%s timeout_seconds=%s", func.__name__, budget)
            raise ApiTimeoutError(f"{func.__name__} did not finish within {budget}s") from exc

    async def fetch_schema(self, filename: str, sheet_name: str | None = None) -> dict[str, Any]:
        """Fetch the column list for a dataset version through the summary endpoint."""

        # The schema manager applies its own deadline, so this call is unbounded here.
        return await asyncio.to_thread(self.client.eda_summary, filename, sheet_name=sheet_name)

    async def health(self) -> dict[str, Any]:
        return await self._call(self.client.health, timeout=3.0)

    async def upload_file(self, path: Path, *, sheet_name: str | None = None) -> dict[str, Any]:
        return await self._call(
            self.client.upload_file, path, sheet_name=sheet_name, timeout=self.client.upload_timeout_seconds
        )

    async def list_sheets(self, filename: str) -> list[str]:
        return await self._call(self.client.list_sheets, filename)

    async def eda_summary(self, filename: str, *, sheet_name: str | None = None) -> dict[str, Any]:
        return await self._call(self.client.eda_summary, filename, sheet_name=sheet_name)

    async def eda_correlation(
        self, filename: str, *, sheet_name: str | None = None, method: str = "pearson"
    ) -> dict[str, Any]:
        return await self._call(self.client.eda_correlation, filename, sheet_name=sheet_name, method=method)

    async def eda_stationarity(
        self, filename: str, *, value_column: str, date_column: str | None = None, sheet_name: str | None = None
    ) -> dict[str, Any]:
        return await self._call(
            self.client.eda_stationarity,
            filename,
            value_column=value_column,
            date_column=date_column,
            sheet_name=sheet_name,
        )

    async def eda_seasonality(
        self, filename: str, *, date_column: str, value_column: str, sheet_name: str | None = None
    ) -> dict[str, Any]:
        return await self._call(
            self.client.eda_seasonality,
            filename,
            date_column=date_column,
            value_column=value_column,
            sheet_name=sheet_name,
        )

    async def eda_plots(
        self,
        filename: str,
        *,
        date_column: str | None = None,
        value_column: str | None = None,
        sheet_name: str | None = None,
    ) -> dict[str, Any]:
        return await self._call(
            self.client.eda_plots,
            filename,
            date_column=date_column,
            value_column=value_column,
            sheet_name=sheet_name,
        )

    async def preprocess(self, operation: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._call(self.client.preprocess, operation, body)

    async def train_model(self, body: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        return await self._call(self.client.train_model, body, timeout=timeout)

    async def predict(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._call(self.client.predict, body)

    async def list_models(self) -> list[dict[str, Any]]:
        return await self._call(self.client.list_models)
