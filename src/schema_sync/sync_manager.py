# This module owns the current dataset schema and pushes every change to the registered selectors.
# Uploads, sheet switches, and destructive transforms all go through one refresh transition.
# Only one refresh may be outstanding; a second request while one is running is rejected.
# A fetch abandoned on timeout keeps running and its result is applied later only if nothing newer started.
# Consumers are re-rendered as a batch so no selector ever observes a half-applied schema.

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import partial
from typing import Any

from src.common.notices import Notice
from src.control_panel.api_client import ApiUnavailableError
from src.schema_sync.consumers import (
    TARGET_CONSUMER,
    ColumnFilter,
    ConsumerRegistration,
    ConsumerState,
    default_registrations,
    render_consumer,
)
from src.schema_sync.dataset_schema import DatasetSchema, extract_column_names, extract_sheet_names

LOGGER = logging.getLogger("schema_sync")

SchemaFetcher = Callable[..., Awaitable[Mapping[str, Any]]]


class SyncState(str, Enum):
    STABLE = "stable"
    REFRESHING = "refreshing"


class RefreshInProgressError(RuntimeError):
    """Raised when a schema refresh is requested while another one is still running."""


@dataclass(frozen=True)
class SyncOutcome:
    applied: bool
    schema: DatasetSchema | None
    generation: int
    notices: tuple[Notice, ...] = field(default_factory=tuple)


class SchemaSyncManager:
    def __init__(
        self,
        fetch_schema: SchemaFetcher,
        *,
        timeout_seconds: float = 30.0,
        registrations: Iterable[ConsumerRegistration] | None = None,
    ) -> None:
        self._fetch_schema = fetch_schema
        self.timeout_seconds = timeout_seconds
        self.state = SyncState.STABLE
        self.schema: DatasetSchema | None = None
        self.generation = 0
        self.notices: list[Notice] = []
        self._registrations: dict[str, ConsumerRegistration] = {}
        self._states: dict[str, ConsumerState] = {}
        self._late_fetches: set[asyncio.Future[Any]] = set()
        self._reserved = False
        for registration in registrations if registrations is not None else default_registrations():
            self.subscribe(registration)

    def subscribe(self, registration: ConsumerRegistration) -> ConsumerState:
        self._registrations[registration.name] = registration
        state = render_consumer(
            registration,
            self.schema,
            previous=self._states.get(registration.name),
            target_column=self._target_column(),
        )
        self._states[registration.name] = state
        return state

    def unsubscribe(self, name: str) -> None:
        self._registrations.pop(name, None)
        self._states.pop(name, None)

    def consumer(self, name: str) -> ConsumerState:
        try:
            return self._states[name]
        except KeyError as exc:
            raise KeyError(f"no consumer registered under name={name}") from exc

    def consumers(self) -> dict[str, ConsumerState]:
        return dict(self._states)

    def options(self, name: str) -> tuple[str, ...]:
        return self.consumer(name).options

    def select(self, name: str, value: str | None) -> ConsumerState:
        state = self.consumer(name)
        if value is not None and value not in state.options:
            raise ValueError(f"value={value!r} is not offered by consumer={name}")
        updated = replace(state, selected=value)
        self._states[name] = updated
        if name == TARGET_CONSUMER:
            for other, registration in self._registrations.items():
                if registration.column_filter is ColumnFilter.EXCLUDE_TARGET:
                    self._states[other] = render_consumer(
                        registration,
                        self.schema,
                        previous=self._states.get(other),
                        target_column=value,
                    )
        return updated

    def publish(self, schema: DatasetSchema) -> None:
        """Replace the schema everywhere and invalidate any fetch abandoned on timeout."""

        self.generation += 1
        self._apply(schema)

    def reserve(self) -> None:
        """Claim the manager for remote work that ends in a refresh, such as an upload or a transform."""

        if self.state is SyncState.REFRESHING:
            raise RefreshInProgressError(f"schema refresh already running generation={self.generation}")
        self.state = SyncState.REFRESHING
        self._reserved = True
        LOGGER.info("schema manager reserved generation=%s", self.generation)

    def release(self) -> None:
        if self._reserved:
            self._reserved = False
            self.state = SyncState.STABLE

    async def select_sheet(self, sheet_name: str) -> SyncOutcome:
        if self.schema is None:
            raise LookupError("no dataset has been uploaded yet")
        return await self.refresh(self.schema.filename, sheet_name)

    async def on_upload(self, upload_data: Mapping[str, Any], *, reserved: bool = False) -> SyncOutcome:
        fallback = DatasetSchema.from_upload(upload_data)
        return await self.refresh(fallback.filename, fallback.selected_sheet, fallback=fallback, reserved=reserved)

    async def on_transform(
        self, processed_file: str, *, new_column_name: str | None = None, reserved: bool = False
    ) -> SyncOutcome:
        return await self.refresh(processed_file, expected_column=new_column_name, reserved=reserved)

    async def refresh(
        self,
        filename: str,
        sheet_name: str | None = None,
        *,
        expected_column: str | None = None,
        fallback: DatasetSchema | None = None,
        reserved: bool = False,
    ) -> SyncOutcome:
        if self.state is SyncState.REFRESHING and not (reserved and self._reserved):
            raise RefreshInProgressError(f"schema refresh already running generation={self.generation}")

        self.state = SyncState.REFRESHING
        self._reserved = False
        self.generation += 1
        generation = self.generation
        LOGGER.info(
            "schema refresh started filename=%s sheet_name=%s generation=%s", filename, sheet_name, generation
        )

        task = asyncio.ensure_future(self._fetch_schema(filename, sheet_name))
        try:
            payload = await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self._late_fetches.add(task)
            task.add_done_callback(
                partial(self._apply_late_result, generation, filename, sheet_name, expected_column)
            )
            LOGGER.warning(
                "schema refresh timed out filename=%s generation=%s timeout_seconds=%s",
                filename,
                generation,
                self.timeout_seconds,
            )
            notice = Notice.transport(
                f"Column list for {filename} did not arrive within {self.timeout_seconds:g}s; "
                "selectors still show the previous dataset."
            )
            return self._keep_prior(generation, [notice], fallback)
        except (ApiUnavailableError, ValueError) as exc:
            LOGGER.warning("schema refresh failed filename=%s generation=%s error=%s", filename, generation, exc)
            notice = Notice.transport(f"Could not refresh columns for {filename}: {exc}")
            return self._keep_prior(generation, [notice], fallback)
        finally:
            self.state = SyncState.STABLE

        notices: list[Notice] = []
        schema = self._schema_from_payload(payload, filename, sheet_name, fallback)
        if schema is None:
            LOGGER.warning("schema payload carried no column list filename=%s generation=%s", filename, generation)
            notice = Notice.shape(f"The schema response for {filename} did not include a column list.")
            return self._keep_prior(generation, [notice], fallback)

        schema, consistency = self._ensure_column(schema, expected_column)
        notices.extend(consistency)
        self._apply(schema)
        self.notices.extend(notices)
        LOGGER.info(
            "schema refresh applied filename=%s columns=%s generation=%s", filename, len(schema.columns), generation
        )
        return SyncOutcome(applied=True, schema=schema, generation=generation, notices=tuple(notices))

    async def wait_for_late_results(self) -> None:
        """Wait until every fetch abandoned on timeout has finished and been applied or discarded."""

        if self._late_fetches:
            await asyncio.gather(*list(self._late_fetches), return_exceptions=True)

    def _keep_prior(
        self, generation: int, notices: list[Notice], fallback: DatasetSchema | None
    ) -> SyncOutcome:
        applied = False
        if self.schema is None and fallback is not None:
            LOGGER.info("publishing upload columns as fallback filename=%s", fallback.filename)
            self._apply(fallback)
            applied = True
        self.notices.extend(notices)
        return SyncOutcome(applied=applied, schema=self.schema, generation=generation, notices=tuple(notices))

    def _schema_from_payload(
        self,
        payload: Any,
        filename: str,
        sheet_name: str | None,
        fallback: DatasetSchema | None,
    ) -> DatasetSchema | None:
        data = payload
        if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
            data = payload["data"]
        columns = extract_column_names(data)
        if not columns:
            return None

        sheets: tuple[str, ...] = tuple(extract_sheet_names(data))
        if not sheets and fallback is not None and fallback.filename == filename:
            sheets = fallback.sheet_names
        if not sheets and self.schema is not None and self.schema.filename == filename:
            sheets = self.schema.sheet_names
        return DatasetSchema.build(
            filename=filename, columns=columns, sheet_names=sheets, selected_sheet=sheet_name
        )

    def _ensure_column(
        self, schema: DatasetSchema, expected_column: str | None
    ) -> tuple[DatasetSchema, list[Notice]]:
        if not expected_column or expected_column in schema.columns:
            return schema, []
        LOGGER.warning(
            "transformed column missing from schema filename=%s column=%s", schema.filename, expected_column
        )
        notice = Notice.consistency(
            f"Column {expected_column} was reported by the transform but is missing from {schema.filename}; "
            "it was added to the selectors."
        )
        return schema.with_column(expected_column), [notice]

    def _apply_late_result(
        self,
        generation: int,
        filename: str,
        sheet_name: str | None,
        expected_column: str | None,
        task: asyncio.Future[Any],
    ) -> None:
        self._late_fetches.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            LOGGER.warning("late schema fetch failed filename=%s generation=%s error=%s", filename, generation, error)
            return
        if generation != self.generation or self.state is not SyncState.STABLE:
            LOGGER.info(
                "discarding stale schema result filename=%s generation=%s current_generation=%s",
                filename,
                generation,
                self.generation,
            )
            return

        schema = self._schema_from_payload(task.result(), filename, sheet_name, None)
        if schema is None:
            LOGGER.warning("late schema payload carried no column list filename=%s", filename)
            return
        schema, notices = self._ensure_column(schema, expected_column)
        self.notices.extend(notices)
        self._apply(schema)
        LOGGER.info("late schema result applied filename=%s generation=%s", filename, generation)

    def _target_column(self) -> str | None:
        state = self._states.get(TARGET_CONSUMER)
        return state.selected if state is not None else None

    def _apply(self, schema: DatasetSchema) -> None:
        previous = self._states
        rendered: dict[str, ConsumerState] = {}
        target_registration = self._registrations.get(TARGET_CONSUMER)
        if target_registration is not None:
            rendered[TARGET_CONSUMER] = render_consumer(
                target_registration, schema, previous=previous.get(TARGET_CONSUMER)
            )
        target = rendered[TARGET_CONSUMER].selected if TARGET_CONSUMER in rendered else None
        for name, registration in self._registrations.items():
            if name not in rendered:
                rendered[name] = render_consumer(
                    registration, schema, previous=previous.get(name), target_column=target
                )

        self.schema = schema
        self._states = {name: rendered[name] for name in self._registrations}
