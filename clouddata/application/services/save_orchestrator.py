"""Save orchestrator: drains a table's change-sets into ordered network batches."""

from collections.abc import Awaitable, Callable

from clouddata.application.services.concurrency_gate import ConcurrencyGate
from clouddata.domain.entities import (
    DataRequest,
    OperationType,
    Record,
    Table,
    extract_rows,
)
from clouddata.infrastructure.logging.colored_logger import SyncLogger, SyncStage

# Sends one batch for a table and returns the processed request.
# Raises TransportError / ServerError when the service rejects the batch.
BatchSender = Callable[[OperationType, Table, list[Record]], Awaitable[DataRequest]]

# Runs under the save gate before any batch is built.
SavePreparer = Callable[[Table], Awaitable[None]]


class SaveOrchestrator:
    """Runs one save sequence under the save gate.

    Order is always delete → create → update, each step only when its
    change-set is non-empty. New rows get negotiated temporary identities
    right before the create batch is built; created rows are correlated with
    the server's response rows by position. A failing step raises to the
    caller and earlier steps are not undone.

    Each batch is a snapshot: rows added, removed or edited while a batch is
    in flight are not committed and stay pending for the next save.
    """

    def __init__(
        self,
        gate: ConcurrencyGate,
        send_batch: BatchSender,
        *,
        auto_apply_changes: bool = True,
    ):
        self._gate = gate
        self._send_batch = send_batch
        self.auto_apply_changes = auto_apply_changes
        self._log = SyncLogger("SaveOrchestrator")

    async def save(
        self, table: Table, *, prepare: SavePreparer | None = None
    ) -> list[DataRequest]:
        """Submit every pending change of ``table``. Returns the batch requests in send order."""
        requests: list[DataRequest] = []
        submitted: list[tuple[Record, int]] = []

        async with self._gate.save():
            self._log.separator(f"save {table.name}")
            if prepare is not None:
                await prepare(table)

            if table.deleted:
                rows = self._snapshot(table.deleted.values(), submitted)
                with self._log.timed_step(SyncStage.DELETE, f"Deleting {len(rows)} record(s)"):
                    requests.append(await self._send_batch(OperationType.DELETE, table, rows))

            if table.new:
                # negotiation and snapshot must not be separated by an await
                assigned = table.negotiate_ids()
                self._log.detail("negotiated", table=table.name, ids=assigned)
                rows = self._snapshot(table.new.values(), submitted)
                with self._log.timed_step(SyncStage.CREATE, f"Creating {len(rows)} record(s)"):
                    request = await self._send_batch(OperationType.CREATE, table, rows)
                    requests.append(request)
                    correlated = table.correlate(rows, extract_rows(request.response, table.name))
                    self._log.detail(
                        "correlated", rows=len(correlated), skipped=len(rows) - len(correlated)
                    )

            if table.modified:
                rows = self._snapshot(table.modified.values(), submitted)
                with self._log.timed_step(SyncStage.UPDATE, f"Updating {len(rows)} record(s)"):
                    requests.append(await self._send_batch(OperationType.UPDATE, table, rows))

            if self.auto_apply_changes:
                table.accept_submitted(submitted)
                self._log.committed(table.name, rows=len(submitted), pending=table.is_changed)
            elif not requests:
                self._log.detail("nothing to save", table=table.name)

        return requests

    @staticmethod
    def _snapshot(rows, submitted: list[tuple[Record, int]]) -> list[Record]:
        batch = list(rows)
        submitted.extend((record, record.revision) for record in batch)
        return batch
