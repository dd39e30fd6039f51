"""Cloud data object: the per-resource client facade.

A CloudDataObject resolves one resource from the session's catalogs and owns
the local working copy of its data (a Dataset), a ConcurrencyGate and the
SaveOrchestrator that pushes local changes back to the service.

Usage:
    customers = CloudDataObject("Customer", session)
    await customers.read("State = 'MA'")
    customers.table.get("42")["Name"] = "Lift Tours"
    customers.add({"Name": "New customer"})
    await customers.save_changes()
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import Enum
from typing import Any
from urllib.parse import quote

from clouddata.application.interfaces.session import DataSession, ServiceResponse
from clouddata.application.schemas.catalog import OperationDefinition, SchemaDefinition
from clouddata.application.services.concurrency_gate import ConcurrencyGate
from clouddata.application.services.save_orchestrator import SaveOrchestrator
from clouddata.application.services.session_context import get_default_session
from clouddata.config import get_settings
from clouddata.domain.entities import (
    DataRequest,
    Dataset,
    MergeMode,
    OperationType,
    QueryRequest,
    Record,
    RecordSchema,
    Table,
)
from clouddata.domain.exceptions import (
    AuthenticationError,
    InvalidOperationError,
    OperationCancelledError,
)
from clouddata.infrastructure.logging.colored_logger import SyncLogger, SyncStage

logger = logging.getLogger(__name__)

EventHandler = Callable[["CloudDataObject", DataRequest | None], Awaitable[None] | None]


class CloudDataEvent(str, Enum):
    """Lifecycle hooks, fired around every network operation."""

    BEFORE_READ = "before_read"
    AFTER_READ = "after_read"
    BEFORE_FILL = "before_fill"
    AFTER_FILL = "after_fill"
    BEFORE_INVOKE = "before_invoke"
    AFTER_INVOKE = "after_invoke"
    BEFORE_CREATE = "before_create"
    AFTER_CREATE = "after_create"
    BEFORE_UPDATE = "before_update"
    AFTER_UPDATE = "after_update"
    BEFORE_DELETE = "before_delete"
    AFTER_DELETE = "after_delete"
    BEFORE_SAVE_CHANGES = "before_save_changes"
    AFTER_SAVE_CHANGES = "after_save_changes"


_BATCH_EVENTS: dict[OperationType, tuple[CloudDataEvent, CloudDataEvent]] = {
    OperationType.DELETE: (CloudDataEvent.BEFORE_DELETE, CloudDataEvent.AFTER_DELETE),
    OperationType.CREATE: (CloudDataEvent.BEFORE_CREATE, CloudDataEvent.AFTER_CREATE),
    OperationType.UPDATE: (CloudDataEvent.BEFORE_UPDATE, CloudDataEvent.AFTER_UPDATE),
}

Query = str | QueryRequest | None


class CloudDataObject:
    """Client for one resource of a cloud data service."""

    def __init__(
        self,
        resource_name: str,
        session: DataSession | None = None,
        *,
        auto_apply_changes: bool | None = None,
    ):
        self._session = session or get_default_session()
        self.name = resource_name
        self._service, self._resource = self._session.verify_resource(resource_name)
        self._main_table = self._resource.main_table
        self._primary_key = (
            self._resource.primary_key(self._main_table) if self._main_table else None
        )
        self._schemas = self._resource.record_schemas()

        if auto_apply_changes is None:
            auto_apply_changes = get_settings().auto_apply_changes
        self._gate = ConcurrencyGate()
        self._orchestrator = SaveOrchestrator(
            self._gate, self._send_batch, auto_apply_changes=auto_apply_changes
        )
        self._handlers: dict[CloudDataEvent, list[EventHandler]] = {}
        self._log = SyncLogger(__name__)
        self._memory = self._new_memory()

        logger.debug(
            "CDO %s: service=%s main table=%s primary key=%s",
            resource_name,
            self._service.name,
            self._main_table,
            self._primary_key,
        )

    # ── Properties ──────────────────────────────────────────────────

    @property
    def session(self) -> DataSession:
        return self._session

    @property
    def gate(self) -> ConcurrencyGate:
        return self._gate

    @property
    def auto_apply_changes(self) -> bool:
        return self._orchestrator.auto_apply_changes

    @auto_apply_changes.setter
    def auto_apply_changes(self, value: bool) -> None:
        self._orchestrator.auto_apply_changes = value

    @property
    def main_table(self) -> str | None:
        return self._main_table

    @property
    def primary_key(self) -> str | None:
        return self._primary_key

    @property
    def record_schema(self) -> RecordSchema:
        return self._schemas.get(self._main_table or "", RecordSchema(self._primary_key))

    @property
    def memory(self) -> Dataset:
        return self._memory

    @property
    def table(self) -> Table:
        """The main table of the local working copy."""
        table = self._memory.main
        if table is None:
            raise InvalidOperationError(self.name, "table")
        return table

    # ── Events ──────────────────────────────────────────────────────

    def subscribe(self, event: CloudDataEvent | str, handler: EventHandler) -> None:
        """Register a sync or async handler called as ``handler(cdo, request)``."""
        self._handlers.setdefault(CloudDataEvent(event), []).append(handler)

    def unsubscribe(self, event: CloudDataEvent | str, handler: EventHandler) -> None:
        handlers = self._handlers.get(CloudDataEvent(event), [])
        if handler in handlers:
            handlers.remove(handler)

    async def _emit(self, event: CloudDataEvent, request: DataRequest | None = None) -> None:
        for handler in list(self._handlers.get(event, [])):
            result = handler(self, request)
            if inspect.isawaitable(result):
                await result

    # ── Network operations ──────────────────────────────────────────

    async def read(
        self,
        query: Query = None,
        *,
        merge_mode: MergeMode = MergeMode.EMPTY,
        cancel: asyncio.Event | None = None,
    ) -> DataRequest:
        """Fetch rows from the service into the local working copy."""
        _check_cancelled(cancel, "read")
        request = self._build_read_request(query)

        await self._emit(CloudDataEvent.BEFORE_FILL, request)
        await self._emit(CloudDataEvent.BEFORE_READ, request)
        with self._log.timed_step(SyncStage.READ, f"Reading {self.name}", merge_mode=merge_mode.value):
            await self._do_request(
                request,
                lambda r: self._merge_response(r, merge_mode),
                wait_for_save=True,
            )
        await self._emit(CloudDataEvent.AFTER_FILL, request)
        await self._emit(CloudDataEvent.AFTER_READ, request)
        return request

    async def fill(
        self,
        query: Query = None,
        *,
        merge_mode: MergeMode = MergeMode.EMPTY,
        cancel: asyncio.Event | None = None,
    ) -> DataRequest:
        return await self.read(query, merge_mode=merge_mode, cancel=cancel)

    async def get(self, query: Query = None, *, cancel: asyncio.Event | None = None) -> Dataset:
        """Read into a fresh Dataset, leaving the local working copy untouched."""
        _check_cancelled(cancel, "get")
        request = self._build_read_request(query)
        await self._do_request(request, wait_for_save=True)
        return Dataset.from_payload(
            request.response if isinstance(request.response, Mapping) else {},
            main_table=self._main_table,
            schemas=self._schemas,
        )

    async def find(
        self,
        predicate: Callable[[Record], bool],
        auto_fetch_filter: Query = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> Record | None:
        """Find a local row; on a miss optionally fetch with ``auto_fetch_filter`` and retry."""
        record = self.table.find(predicate)
        if record is None and auto_fetch_filter is not None:
            await self.read(auto_fetch_filter, merge_mode=MergeMode.MERGE, cancel=cancel)
            record = self.table.find(predicate)
        return record

    async def find_by_id(
        self,
        identity: str,
        *,
        auto_fetch: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> Record | None:
        identity = str(identity)
        record = self.table.get(identity)
        if record is None and auto_fetch:
            filter_text = f"{self._primary_key or 'ID'} = '{identity}'"
            await self.read(filter_text, merge_mode=MergeMode.MERGE, cancel=cancel)
            record = self.table.get(identity)
        return record

    async def invoke(
        self,
        operation_name: str,
        params: dict[str, Any] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> DataRequest:
        """Call a named invoke operation of the resource."""
        _check_cancelled(cancel, "invoke")
        operation = self._verify_operation(OperationType.INVOKE, operation_name)
        request = DataRequest(
            operation_type=OperationType.INVOKE,
            method=operation.http_method,
            url=f"{self._resource_url()}{operation.path}",
            fn_name=operation.name,
            obj_param={"request": params} if self._service.use_request else params,
        )

        def merge(processed: DataRequest) -> None:
            if operation.merge_mode is not None:
                self._merge_response(processed, operation.merge_mode)

        await self._emit(CloudDataEvent.BEFORE_INVOKE, request)
        with self._log.timed_step(SyncStage.INVOKE, f"Invoking {self.name}.{operation.name}"):
            await self._do_request(request, merge)
        await self._emit(CloudDataEvent.AFTER_INVOKE, request)
        return request

    async def save_changes(
        self, table: Table | None = None, *, cancel: asyncio.Event | None = None
    ) -> list[DataRequest]:
        """Send pending deletes, creates and updates of ``table`` (default: main table)."""
        _check_cancelled(cancel, "save_changes")
        table = table or self.table
        requests = await self._orchestrator.save(table, prepare=self._prepare_save)
        await self._emit(CloudDataEvent.AFTER_SAVE_CHANGES)
        return requests

    async def _prepare_save(self, table: Table) -> None:
        # runs under the save gate: a queued save sees the change-sets left by the one before it
        if table.deleted:
            self._verify_operation(OperationType.DELETE)
        if table.new:
            self._verify_operation(OperationType.CREATE)
        if table.modified:
            self._verify_operation(OperationType.UPDATE)
        await self._emit(CloudDataEvent.BEFORE_SAVE_CHANGES)

    # ── Local operations ────────────────────────────────────────────

    def add(self, values: Record | Mapping[str, Any] | None = None) -> Record:
        """Add a new row to the main table. Mappings are pre-filled with schema defaults."""
        record = values if isinstance(values, Record) else self.table.new_record(values)
        return self.table.add(record, MergeMode.APPEND)

    def create(self, values: Record | Mapping[str, Any] | None = None) -> Record:
        return self.add(values)

    def add_records(
        self,
        records: Iterable[Record | Mapping[str, Any]],
        merge_mode: MergeMode = MergeMode.REPLACE,
    ) -> list[Record]:
        return self.table.add_many(records, merge_mode)

    def assign(self, record: Record | Mapping[str, Any]) -> Record:
        """Merge ``record`` into the row with the same identity."""
        return self.table.add(record, MergeMode.MERGE)

    def remove(self, record: Record | str) -> bool:
        return self.table.remove(record)

    def get_data(self) -> list[Record]:
        return self.table.records()

    def has_data(self) -> bool:
        return len(self.table) > 0

    def has_changes(self) -> bool:
        return self.table.is_changed

    def accept_changes(self) -> None:
        self.table.accept()

    def reject_changes(self) -> None:
        self.table.reject()

    def reset(self) -> None:
        """Discard the working copy and every pending change."""
        self._memory.clear()
        self._memory = self._new_memory()

    def get_schema(self) -> SchemaDefinition | None:
        return self._resource.schema_definition

    # ── Internals ───────────────────────────────────────────────────

    def _new_memory(self) -> Dataset:
        dataset = Dataset(
            (self._resource.schema_definition.dataset_name or "")
            if self._resource.schema_definition
            else "",
            main_table=self._main_table,
            schemas=self._schemas,
        )
        if self._main_table:
            dataset.ensure_table(self._main_table)
        return dataset

    def _resource_url(self) -> str:
        return f"{self._session.service_uri.rstrip('/')}{self._service.address}{self._resource.path}"

    def _verify_operation(
        self, operation_type: OperationType, name: str | None = None
    ) -> OperationDefinition:
        operation = self._resource.find_operation(operation_type, name)
        if operation is None:
            raise InvalidOperationError(self.name, operation_type.value, name)
        return operation

    def _build_read_request(self, query: Query) -> DataRequest:
        operation = self._verify_operation(OperationType.READ)
        if isinstance(query, QueryRequest):
            filter_text = query.serialize(operation.capabilities)
        else:
            filter_text = query or ""
        path = operation.path.replace("{filter}", quote(filter_text, safe="")) if filter_text else ""
        return DataRequest(
            operation_type=OperationType.READ,
            method=operation.http_method,
            url=f"{self._resource_url()}{path}",
            fn_name=operation.name or None,
        )

    async def _send_batch(
        self, operation_type: OperationType, table: Table, records: list[Record]
    ) -> DataRequest:
        operation = self._verify_operation(operation_type)
        request = DataRequest(
            operation_type=operation_type,
            method=operation.http_method,
            url=self._resource_url(),
            fn_name=operation.name or None,
            obj_param={table.name: [r.to_payload() for r in records]},
            table_name=table.name,
        )
        before, after = _BATCH_EVENTS[operation_type]
        await self._emit(before, request)
        await self._do_request(request)
        await self._emit(after, request)
        return request

    async def _do_request(
        self,
        request: DataRequest,
        on_success: Callable[[DataRequest], None] | None = None,
        *,
        wait_for_save: bool = False,
    ) -> DataRequest:
        """Send ``request`` and process its response under the request gate."""
        if not self._session.is_logged_in:
            status = self._session.login_result
            raise AuthenticationError(status.value if status is not None else "not logged in")

        gate = self._gate.read() if wait_for_save else self._gate.request()
        async with gate:
            response = await self._session.send(request.method, request.url, request.obj_param)
            self._process_response(request, response)
            if on_success is not None:
                on_success(request)
        return request

    @staticmethod
    def _process_response(request: DataRequest, response: ServiceResponse) -> None:
        request.status_code = response.status_code
        request.success = response.is_success
        body = response.body
        if request.fn_name and isinstance(body, Mapping) and "response" in body:
            body = body["response"]
        request.response = body
        request.raise_for_error()

    def _merge_response(self, request: DataRequest, merge_mode: MergeMode) -> None:
        if isinstance(request.response, Mapping):
            self._memory.import_payload(request.response, merge_mode)

    def __repr__(self) -> str:
        return f"CloudDataObject(resource={self.name!r}, main_table={self._main_table!r})"


def _check_cancelled(cancel: asyncio.Event | None, operation: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(operation)
