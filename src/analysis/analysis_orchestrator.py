# This module runs the exploratory analysis queries for one dataset version.
# The five sections are independent, so they are issued together and awaited as a group.
# A failed section becomes an error entry in the report; it never cancels or hides the others.
# Sections whose required columns were not chosen are skipped rather than reported as failures.

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from src.control_panel.api_client import ApiUnavailableError

LOGGER = logging.getLogger("analysis")

SECTION_NAMES: tuple[str, ...] = ("summary", "correlation", "stationarity", "seasonality", "plots")


class AnalysisBackend(Protocol):
    async def eda_summary(self, filename: str, *, sheet_name: str | None = None) -> dict[str, Any]: ...

    async def eda_correlation(
        self, filename: str, *, sheet_name: str | None = None, method: str = "pearson"
    ) -> dict[str, Any]: ...

    async def eda_stationarity(
        self, filename: str, *, value_column: str, date_column: str | None = None, sheet_name: str | None = None
    ) -> dict[str, Any]: ...

    async def eda_seasonality(
        self, filename: str, *, date_column: str, value_column: str, sheet_name: str | None = None
    ) -> dict[str, Any]: ...

    async def eda_plots(
        self,
        filename: str,
        *,
        date_column: str | None = None,
        value_column: str | None = None,
        sheet_name: str | None = None,
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class AnalysisRequest:
    filename: str
    sheet_name: str | None = None
    date_column: str | None = None
    value_column: str | None = None
    correlation_method: str = "pearson"


@dataclass(frozen=True)
class AnalysisSection:
    name: str
    status: str
    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class AnalysisReport:
    filename: str
    sections: dict[str, AnalysisSection] = field(default_factory=dict)
    skipped: tuple[str, ...] = ()

    def succeeded(self) -> list[str]:
        return [name for name, section in self.sections.items() if section.ok]

    def failed(self) -> dict[str, str]:
        return {name: section.error or "unknown error" for name, section in self.sections.items() if not section.ok}

    @property
    def any_succeeded(self) -> bool:
        return bool(self.succeeded())


def _section_calls(
    backend: AnalysisBackend, request: AnalysisRequest
) -> tuple[dict[str, Callable[[], Awaitable[dict[str, Any]]]], list[str]]:
    calls: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {}
    skipped: list[str] = []

    calls["summary"] = lambda: backend.eda_summary(request.filename, sheet_name=request.sheet_name)
    calls["correlation"] = lambda: backend.eda_correlation(
        request.filename, sheet_name=request.sheet_name, method=request.correlation_method
    )
    if request.value_column:
        calls["stationarity"] = lambda: backend.eda_stationarity(
            request.filename,
            value_column=request.value_column,
            date_column=request.date_column,
            sheet_name=request.sheet_name,
        )
    else:
        skipped.append("stationarity")
    if request.date_column and request.value_column:
        calls["seasonality"] = lambda: backend.eda_seasonality(
            request.filename,
            date_column=request.date_column,
            value_column=request.value_column,
            sheet_name=request.sheet_name,
        )
    else:
        skipped.append("seasonality")
    calls["plots"] = lambda: backend.eda_plots(
        request.filename,
        date_column=request.date_column,
        value_column=request.value_column,
        sheet_name=request.sheet_name,
    )
    return calls, skipped


async def _run_section(
    name: str, call: Callable[[], Awaitable[dict[str, Any]]], timeout_seconds: float
) -> AnalysisSection:
    try:
        data = await asyncio.wait_for(call(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        LOGGER.warning("analysis section timed out section=%s timeout_seconds=%s", name, timeout_seconds)
        return AnalysisSection(name=name, status="error", error=f"timed out after {timeout_seconds:g}s")
    except (ApiUnavailableError, ValueError) as exc:
        LOGGER.warning("analysis section failed section=%s error=%s", name, exc)
        return AnalysisSection(name=name, status="error", error=str(exc))
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("analysis section raised unexpectedly section=%s", name)
        return AnalysisSection(name=name, status="error", error=f"{type(exc).__name__}: {exc}")
    return AnalysisSection(name=name, status="ok", data=dict(data) if isinstance(data, dict) else {"value": data})


async def run_analysis(
    backend: AnalysisBackend, request: AnalysisRequest, *, timeout_seconds: float = 30.0
) -> AnalysisReport:
    if not request.filename:
        raise ValueError("analysis requires a filename")

    calls, skipped = _section_calls(backend, request)
    LOGGER.info(
        "analysis started filename=%s sheet_name=%s sections=%s skipped=%s",
        request.filename,
        request.sheet_name,
        ",".join(calls),
        ",".join(skipped) or "none",
    )
    results = await asyncio.gather(*(_run_section(name, call, timeout_seconds) for name, call in calls.items()))
    by_name = {section.name: section for section in results}
    sections = {name: by_name[name] for name in SECTION_NAMES if name in by_name}

    report = AnalysisReport(filename=request.filename, sections=sections, skipped=tuple(skipped))
    LOGGER.info(
        "analysis finished filename=%s succeeded=%s failed=%s",
        request.filename,
        len(report.succeeded()),
        len(report.failed()),
    )
    return report
