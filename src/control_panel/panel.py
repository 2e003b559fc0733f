# This file implements the stage workflow facade that a UI layer drives: upload, explore, preprocess, train, forecast.
# Every stage returns a PanelOutcome, so failures arrive as notices and the last good state stays in place.
# Destructive preprocessing steps hand their new dataset version to the schema manager before returning.
# The facade owns the forecast session that download and plot collaborators read from.

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, TypeVar

from src.analysis.analysis_orchestrator import AnalysisReport, AnalysisRequest, run_analysis
from src.common.notices import Notice
from src.control_panel.api_client import AnalyticsApiClient, ApiRejectedError, ApiUnavailableError
from src.control_panel.async_backend import AsyncAnalyticsBackend
from src.control_panel.panel_config import PanelConfig
from src.control_panel.payloads import (
    PayloadShapeError,
    TrainedModelInfo,
    TransformResponse,
    parse_transform,
    parse_upload,
)
from src.control_panel.requests_validation import (
    ForecastRequest,
    RequestValidationError,
    TrainingRequest,
    validate_upload_file,
)
from src.results.category_aggregation import AGGREGATE_MISMATCH, AGGREGATE_SYNTHESIZED
from src.results.forecast_results import ForecastResult, ForecastSession, normalize_forecast
from src.results.metric_record import CategoryPartitionedResult, ResultShape, TrainingResult
from src.results.normalizer import normalize_training_result
from src.schema_sync.dataset_schema import DatasetSchema
from src.schema_sync.sync_manager import RefreshInProgressError, SchemaSyncManager, SyncOutcome

LOGGER = logging.getLogger("control_panel")

T = TypeVar("T")

PASSTHROUGH_OPERATIONS = {"handle-missing", "outliers", "scale"}


@dataclass(frozen=True)
class PanelOutcome(Generic[T]):
    value: T | None
    notices: tuple[Notice, ...] = ()

    @property
    def ok(self) -> bool:
        return self.value is not None


def _diagnostic_notice(note: str) -> Notice:
    if note in (AGGREGATE_MISMATCH, AGGREGATE_SYNTHESIZED) or "payload shows" in note:
        return Notice.consistency(note)
    return Notice.shape(note)


def _refreshing_notice(exc: Exception) -> Notice:
    return Notice.transport(f"Column lists are still refreshing; try again shortly ({exc})")


def _remote_failure(stage: str, exc: Exception) -> Notice:
    if isinstance(exc, ApiRejectedError):
        return Notice.validation(f"{stage} was rejected: {exc.detail or exc}")
    return Notice.transport(f"{stage} failed: {exc}")


class ControlPanel:
    def __init__(
        self,
        backend: AsyncAnalyticsBackend,
        config: PanelConfig,
        *,
        schema_sync: SchemaSyncManager | None = None,
    ) -> None:
        self.backend = backend
        self.config = config
        self.schema_sync = schema_sync or SchemaSyncManager(
            backend.fetch_schema, timeout_seconds=config.schema_refresh_timeout_seconds
        )
        self.forecasts = ForecastSession()
        self.last_training: TrainingResult | CategoryPartitionedResult | None = None
        self.last_analysis: AnalysisReport | None = None

    @classmethod
    def from_config(cls, config: PanelConfig) -> ControlPanel:
        client = AnalyticsApiClient(
            base_url=config.api_base_url,
            timeout_seconds=config.request_timeout_seconds,
            upload_timeout_seconds=config.upload_timeout_seconds,
        )
        return cls(AsyncAnalyticsBackend(client, timeout_seconds=config.request_timeout_seconds), config)

    @property
    def schema(self) -> DatasetSchema | None:
        return self.schema_sync.schema

    async def check_health(self) -> PanelOutcome[dict[str, Any]]:
        try:
            payload = await self.backend.health()
        except (ApiUnavailableError, ValueError) as exc:
            LOGGER.warning("health check failed error=%s", exc)
            return PanelOutcome(None, (Notice.transport(f"Backend not connected: {exc}"),))
        return PanelOutcome(payload)

    async def upload(self, path: Path, *, sheet_name: str | None = None) -> PanelOutcome[DatasetSchema]:
        try:
            size = validate_upload_file(
                path, allowed_extensions=self.config.allowed_extensions, max_bytes=self.config.max_upload_bytes
            )
        except RequestValidationError as exc:
            return PanelOutcome(None, (Notice.validation(str(exc)),))

        try:
            self.schema_sync.reserve()
        except RefreshInProgressError as exc:
            return PanelOutcome(None, (_refreshing_notice(exc),))

        LOGGER.info("upload started path=%s size_bytes=%s sheet_name=%s", path, size, sheet_name)
        try:
            try:
                data = await self.backend.upload_file(Path(path), sheet_name=sheet_name)
                upload = parse_upload(data)
            except PayloadShapeError as exc:
                return PanelOutcome(None, (Notice.shape(str(exc)),))
            except (ApiUnavailableError, ValueError) as exc:
                return PanelOutcome(None, (_remote_failure("Upload", exc),))
            sync = await self.schema_sync.on_upload(upload.model_dump(), reserved=True)
        finally:
            self.schema_sync.release()
        return PanelOutcome(self.schema if sync.applied or self.schema else None, sync.notices)

    async def select_sheet(self, sheet_name: str) -> PanelOutcome[DatasetSchema]:
        try:
            sync = await self._sync(self.schema_sync.select_sheet(sheet_name))
        except LookupError as exc:
            return PanelOutcome(None, (Notice.validation(str(exc)),))
        return PanelOutcome(self.schema, sync.notices)

    async def explore(
        self,
        *,
        date_column: str | None = None,
        value_column: str | None = None,
        sheet_name: str | None = None,
        filename: str | None = None,
    ) -> PanelOutcome[AnalysisReport]:
        target = filename or (self.schema.filename if self.schema else None)
        if not target:
            return PanelOutcome(None, (Notice.validation("Please upload a file first"),))
        request = AnalysisRequest(
            filename=target,
            sheet_name=sheet_name or (self.schema.selected_sheet if self.schema else None),
            date_column=date_column,
            value_column=value_column,
            correlation_method=self.config.correlation_method,
        )
        report = await run_analysis(self.backend, request, timeout_seconds=self.config.analysis_timeout_seconds)
        self.last_analysis = report
        notices = tuple(
            Notice.transport(f"{section.capitalize()} analysis failed: {error}")
            for section, error in report.failed().items()
        )
        return PanelOutcome(report, notices)

    async def fix_stationarity(
        self,
        *,
        date_column: str,
        value_column: str,
        method: str = "difference",
        order: int = 1,
        save_as: str | None = None,
        sheet_name: str | None = None,
    ) -> PanelOutcome[TransformResponse]:
        body: dict[str, Any] = {"method": method, "order": order}
        return await self._transform("fix-stationarity", date_column, value_column, body, save_as, sheet_name)

    async def fix_seasonality(
        self,
        *,
        date_column: str,
        value_column: str,
        method: str = "difference",
        seasonal_period: int | None = None,
        save_as: str | None = None,
        sheet_name: str | None = None,
    ) -> PanelOutcome[TransformResponse]:
        body: dict[str, Any] = {"method": method}
        if seasonal_period:
            body["seasonal_period"] = seasonal_period
        return await self._transform("fix-seasonality", date_column, value_column, body, save_as, sheet_name)

    async def preprocess(self, operation: str, **options: Any) -> PanelOutcome[dict[str, Any]]:
        """Run a non-destructive preprocessing step (missing values, outliers, scaling) on the current file."""

        if operation not in PASSTHROUGH_OPERATIONS:
            return PanelOutcome(None, (Notice.validation(f"Unknown preprocessing operation: {operation}"),))
        if self.schema is None:
            return PanelOutcome(None, (Notice.validation("Please upload a file first"),))
        body = {"filename": self.schema.filename, **options}
        try:
            payload = await self.backend.preprocess(operation, body)
        except (ApiUnavailableError, ValueError) as exc:
            return PanelOutcome(None, (_remote_failure(f"Preprocessing ({operation})", exc),))
        return PanelOutcome(payload)

    async def train(self, request: TrainingRequest) -> PanelOutcome[TrainingResult | CategoryPartitionedResult]:
        try:
            request.validate(split_tolerance=self.config.split_tolerance)
        except RequestValidationError as exc:
            return PanelOutcome(None, (Notice.validation(str(exc)),))

        LOGGER.info(
            "training started filename=%s model_type=%s category_column=%s",
            request.filename,
            request.model_type,
            request.category_column,
        )
        try:
            payload = await self.backend.train_model(
                request.to_payload(), timeout=self.config.training_timeout_seconds
            )
        except (ApiUnavailableError, ValueError) as exc:
            return PanelOutcome(None, (_remote_failure("Training", exc),))

        result = normalize_training_result(
            payload,
            exclusion_ratio=self.config.ensemble_exclusion_ratio,
            best_weight_floor=self.config.ensemble_best_weight_floor,
        )
        notices: list[Notice] = []
        if isinstance(result, TrainingResult) and result.shape is ResultShape.EMPTY:
            notices.append(Notice.shape("Training finished but the response carried no recognizable metrics."))
        elif isinstance(result, CategoryPartitionedResult):
            notices.extend(_diagnostic_notice(note) for note in result.diagnostics)
            for failure in result.failures():
                notices.append(Notice.shape(f"Category {failure.category} failed: {failure.error}"))
        self.last_training = result
        return PanelOutcome(result, tuple(notices))

    async def forecast(self, request: ForecastRequest) -> PanelOutcome[ForecastResult]:
        try:
            request.validate()
        except RequestValidationError as exc:
            return PanelOutcome(None, (Notice.validation(str(exc)),))

        try:
            payload = await self.backend.predict(request.to_payload())
        except (ApiUnavailableError, ValueError) as exc:
            return PanelOutcome(None, (_remote_failure("Forecast", exc),))

        result = normalize_forecast(payload, model_name=request.model_name)
        notices = [_diagnostic_notice(note) for note in result.diagnostics]
        notices.extend(
            Notice.shape(f"Forecast for category {category} failed: {error}")
            for category, error in result.category_errors.items()
        )
        self.forecasts.record(result, filename=request.filename, date_column=request.date_column)
        return PanelOutcome(result, tuple(notices))

    async def list_models(self) -> PanelOutcome[list[TrainedModelInfo]]:
        try:
            models = await self.backend.list_models()
        except (ApiUnavailableError, ValueError) as exc:
            return PanelOutcome(None, (_remote_failure("Listing models", exc),))
        return PanelOutcome([TrainedModelInfo.model_validate(model) for model in models if model.get("name")])

    async def _transform(
        self,
        operation: str,
        date_column: str,
        value_column: str,
        options: dict[str, Any],
        save_as: str | None,
        sheet_name: str | None,
    ) -> PanelOutcome[TransformResponse]:
        if self.schema is None:
            return PanelOutcome(None, (Notice.validation("Please upload a file first"),))
        if not date_column or not value_column:
            return PanelOutcome(None, (Notice.validation("Please select date and value columns"),))

        body: dict[str, Any] = {
            "filename": self.schema.filename,
            "date_column": date_column,
            "value_column": value_column,
            **options,
        }
        sheet = sheet_name or self.schema.selected_sheet
        if sheet:
            body["sheet_name"] = sheet
        if save_as:
            body["save_as"] = save_as

        try:
            self.schema_sync.reserve()
        except RefreshInProgressError as exc:
            return PanelOutcome(None, (_refreshing_notice(exc),))

        try:
            try:
                transform = parse_transform(await self.backend.preprocess(operation, body))
            except PayloadShapeError as exc:
                return PanelOutcome(None, (Notice.shape(str(exc)),))
            except (ApiUnavailableError, ValueError) as exc:
                return PanelOutcome(None, (_remote_failure(f"Preprocessing ({operation})", exc),))

            LOGGER.info(
                "transform applied operation=%s processed_file=%s new_column_name=%s",
                operation,
                transform.processed_file,
                transform.new_column_name,
            )
            sync = await self.schema_sync.on_transform(
                transform.processed_file, new_column_name=transform.new_column_name, reserved=True
            )
        finally:
            self.schema_sync.release()
        return PanelOutcome(transform, sync.notices)

    async def _sync(self, refresh: Any) -> SyncOutcome:
        try:
            return await refresh
        except RefreshInProgressError as exc:
            return SyncOutcome(
                applied=False,
                schema=self.schema,
                generation=self.schema_sync.generation,
                notices=(_refreshing_notice(exc),),
            )
