"""Domain entity: identity-keyed table of records with change classification.

Every structural operation (add, remove, field edit, clear) updates three
identity-keyed change-sets (``new``, ``modified`` and ``deleted``) from
which save batches are built:

    add unseen identity           → new
    add existing, MERGE/REPLACE   → modified  (unless already new)
    add existing, APPEND          → DuplicateIdentityError, no mutation
    add existing, EMPTY           → ignored
    field edit on a member row    → modified  (unless already new)
    remove                        → discarded if only new, else deleted (snapshot)
    clear                         → everything dropped, no network effect

Rows imported from the server go through ``load`` and are never classified.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from clouddata.domain.entities.record import Record, RecordSchema, RowState
from clouddata.domain.exceptions import CorrelationError, DuplicateIdentityError

logger = logging.getLogger(__name__)

RowInput = Record | Mapping[str, Any]


class MergeMode(str, Enum):
    """How an incoming row with an identity already in the table is handled."""

    EMPTY = "empty"        # load: empty the table first; add: ignore duplicates
    APPEND = "append"      # duplicate identity is an error
    MERGE = "merge"        # fill unset fields of the existing row
    REPLACE = "replace"    # replace the existing row


class Table:
    """An identity-keyed collection of records owned by one dataset.

    The table registers an observer on each record it owns so field edits are
    reclassified immediately; the observer is removed when the record leaves
    the table. All mutations run under a short-lived re-entrant lock.
    """

    def __init__(
        self,
        name: str,
        records: Iterable[RowInput] = (),
        *,
        schema: RecordSchema | None = None,
    ):
        self.name = name
        self.schema = schema or RecordSchema()
        self._lock = threading.RLock()
        self._rows: dict[str, Record] = {}
        self._new: dict[str, Record] = {}
        self._modified: dict[str, Record] = {}
        self._deleted: dict[str, Record] = {}
        # id(record) → key the record is stored under in _rows
        self._keys: dict[int, str] = {}
        if records:
            self.load(records, MergeMode.REPLACE)

    # ── Read access ─────────────────────────────────────────────────

    @property
    def rows(self) -> Mapping[str, Record]:
        return MappingProxyType(self._rows)

    @property
    def new(self) -> Mapping[str, Record]:
        return MappingProxyType(self._new)

    @property
    def modified(self) -> Mapping[str, Record]:
        return MappingProxyType(self._modified)

    @property
    def deleted(self) -> Mapping[str, Record]:
        return MappingProxyType(self._deleted)

    @property
    def is_changed(self) -> bool:
        return bool(self._new or self._modified or self._deleted)

    def get(self, identity: str) -> Record | None:
        return self._rows.get(str(identity))

    def find(self, predicate: Callable[[Record], bool]) -> Record | None:
        return next((r for r in self.records() if predicate(r)), None)

    def records(self) -> list[Record]:
        with self._lock:
            return list(self._rows.values())

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records())

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Record):
            return self._keys.get(id(item)) is not None
        return item in self._rows

    def new_record(self, values: Mapping[str, Any] | None = None) -> Record:
        """Create a detached record pre-filled with the schema defaults.

        The primary-key default is not applied; the row keeps a generated
        identity until it is negotiated for submission.
        """
        pk = self.schema.primary_key
        record = Record(
            {k: v for k, v in self.schema.defaults.items() if k != pk},
            schema=self.schema,
        )
        if values:
            record.merge_untracked(values)
        return record

    def to_payload(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.records()]

    # ── Structural operations ───────────────────────────────────────

    def add(self, item: RowInput, merge_mode: MergeMode = MergeMode.APPEND) -> Record:
        """Insert a caller-side row and classify it. Returns the row now held by the table."""
        record = self._coerce(item)
        with self._lock:
            identity = record.identity
            existing = self._rows.get(identity)

            if existing is None:
                self._insert(record)
                snapshot = self._deleted.pop(identity, None)
                if snapshot is not None:
                    # re-added after a removal: the server still holds the row
                    record.inherit_change_log(snapshot)
                    self._classify_modified(record)
                else:
                    self._classify_new(record)
                return record

            if merge_mode is MergeMode.APPEND:
                raise DuplicateIdentityError(self.name, identity)

            if merge_mode is MergeMode.EMPTY:
                logger.debug("Table %s: ignoring duplicate identity %s", self.name, identity)
                return existing

            if merge_mode is MergeMode.MERGE:
                self._fill_unset(existing, record, tracked=True)
                self._classify_modified(existing)
                return existing

            record.inherit_change_log(existing)
            record.row_state = existing.row_state
            record.client_id = existing.client_id
            self._detach(existing)
            self._insert(record)
            if identity in self._new:
                self._new[identity] = record
            else:
                self._classify_modified(record)
            return record

    def add_many(
        self, items: Iterable[RowInput], merge_mode: MergeMode = MergeMode.APPEND
    ) -> list[Record]:
        records = [self._coerce(i) for i in items]
        with self._lock:
            if merge_mode is MergeMode.APPEND:
                self._check_unique(records)
            return [self.add(r, merge_mode) for r in records]

    def remove(self, item: Record | str) -> bool:
        """Remove a row. Returns False when the row is not in the table."""
        with self._lock:
            if isinstance(item, Record):
                key = self._keys.get(id(item), item.identity)
            else:
                key = str(item)
            record = self._rows.get(key)
            if record is None:
                return False

            self._detach(record)
            if self._new.pop(key, None) is not None:
                record.row_state = None
                logger.debug("Table %s: discarded unsaved row %s", self.name, key)
                return True

            self._modified.pop(key, None)
            snapshot = record.clone()
            snapshot.reject_changes()
            snapshot.row_state = RowState.DELETED
            snapshot.client_id = snapshot.identity
            self._deleted[snapshot.identity] = snapshot
            return True

    def clear(self) -> None:
        """Empty the table and drop every pending change."""
        with self._lock:
            for record in list(self._rows.values()):
                record.detach_observer()
            self._rows.clear()
            self._keys.clear()
            self._new.clear()
            self._modified.clear()
            self._deleted.clear()

    def load(self, items: Iterable[RowInput], merge_mode: MergeMode = MergeMode.EMPTY) -> None:
        """Import server rows. Duplicate handling follows ``merge_mode``; nothing is classified."""
        records = [self._coerce(i) for i in items]
        with self._lock:
            if merge_mode is MergeMode.APPEND:
                self._check_unique(records)
            if merge_mode is MergeMode.EMPTY:
                self.clear()

            for record in records:
                identity = record.identity
                existing = self._rows.get(identity)
                if existing is None:
                    self._insert(record)
                elif merge_mode is MergeMode.MERGE:
                    self._fill_unset(existing, record, tracked=False)
                elif merge_mode is MergeMode.REPLACE:
                    self._detach(existing)
                    self._insert(record)
                    self._modified.pop(identity, None)
                    self._new.pop(identity, None)
            logger.debug("Table %s: loaded %d row(s) (%s)", self.name, len(records), merge_mode.value)

    # ── Commit / rollback ───────────────────────────────────────────

    def accept(self) -> None:
        """Commit: every pending change becomes durable."""
        with self._lock:
            for record in self._rows.values():
                record.accept_changes()
                record.row_state = None
                record.client_id = None
            self._new.clear()
            self._modified.clear()
            self._deleted.clear()

    def accept_submitted(self, submitted: Iterable[tuple[Record, int]]) -> None:
        """Commit only the rows a save actually sent.

        ``submitted`` pairs each sent row (or deleted snapshot) with its
        ``revision`` at send time. Rows added, removed or edited after their
        batch was built stay pending for the next save; a created row edited
        in flight stays pending as a modification of its server identity.
        """
        with self._lock:
            for record, revision in submitted:
                if record.row_state is RowState.DELETED:
                    if self._deleted.get(record.identity) is record:
                        del self._deleted[record.identity]
                    continue

                key = self._keys.get(id(record))
                if key is None:
                    continue
                was_new = self._new.get(key) is record
                if not was_new and self._modified.get(key) is not record:
                    continue

                if record.revision != revision:
                    if was_new:
                        del self._new[key]
                        self._classify_modified(record)
                    continue

                self._new.pop(key, None)
                self._modified.pop(key, None)
                record.accept_changes()
                record.row_state = None
                record.client_id = None

    def reject(self) -> None:
        """Roll back: drop new rows, revert edits, restore deleted rows."""
        with self._lock:
            for key in list(self._new):
                record = self._rows.get(key)
                if record is not None:
                    self._detach(record)
                    record.row_state = None

            for record in list(self._modified.values()):
                record.reject_changes()
                record.row_state = None
                record.client_id = None
                if record.identity not in self._rows:
                    self._rekey(record, record.identity)

            for snapshot in self._deleted.values():
                snapshot.reject_changes()
                snapshot.row_state = None
                snapshot.client_id = None
                if snapshot.identity in self._rows:
                    logger.warning(
                        "Table %s: cannot restore deleted row %s, identity in use",
                        self.name,
                        snapshot.identity,
                    )
                    continue
                self._insert(snapshot)

            self._new.clear()
            self._modified.clear()
            self._deleted.clear()

    # ── ID negotiation / correlation ────────────────────────────────

    def negotiate_ids(self) -> dict[str, str]:
        """Give every new row a temporary identity unique for submission.

        One new row gets ``"0"``; several get ``"-1"``, ``"-2"``, … in
        enumeration order. Returns a mapping client id → negotiated identity.
        """
        with self._lock:
            pending = list(self._new.values())
            if not pending:
                return {}

            candidates = self._candidate_ids(len(pending))
            assigned: dict[str, str] = {}
            for record in pending:
                old_key = self._keys[id(record)]
                new_key = next(c for c in candidates if c == old_key or c not in self._rows)
                if record.client_id is None:
                    record.client_id = old_key
                if new_key != old_key:
                    record.set_identity(new_key)
                    self._rekey(record, new_key)
                assigned[record.client_id] = new_key

            # keep the new-set in enumeration order after re-keying
            self._new.clear()
            self._new.update((self._keys[id(r)], r) for r in pending)
            logger.debug("Table %s: negotiated ids %s", self.name, assigned)
            return assigned

    def correlate(
        self, submitted: list[Record], returned: list[Mapping[str, Any]]
    ) -> list[Record]:
        """Match created rows to response rows by position and merge server values.

        A row that cannot be correlated keeps its negotiated identity; the
        failure is logged and the remaining rows are still processed.
        """
        correlated: list[Record] = []
        with self._lock:
            for position, record in enumerate(submitted):
                try:
                    self._correlate_one(position, record, returned)
                except CorrelationError as exc:
                    logger.warning("Table %s: %s", self.name, exc)
                    continue
                correlated.append(record)
        return correlated

    # ── Internals ───────────────────────────────────────────────────

    def _correlate_one(
        self, position: int, record: Record, returned: list[Mapping[str, Any]]
    ) -> None:
        client_id = record.client_id or record.identity
        if position >= len(returned):
            raise CorrelationError(client_id, f"no response row at position {position}")
        values = returned[position]
        if not isinstance(values, Mapping):
            raise CorrelationError(client_id, f"response row {position} is not an object")

        old_key = self._keys.get(id(record))
        if old_key is None:
            raise CorrelationError(client_id, "row is no longer in the table")

        new_key = old_key
        pk = self.schema.primary_key
        if pk and values.get(pk) not in (None, ""):
            new_key = str(values[pk])
        if new_key != old_key and new_key in self._rows:
            raise CorrelationError(client_id, f"server identity {new_key} already in use")

        record.merge_untracked(values)
        self._rekey(record, new_key)

    def _coerce(self, item: RowInput) -> Record:
        if isinstance(item, Record):
            item.bind_schema(self.schema)
            return item
        return Record.from_payload(item, self.schema)

    def _check_unique(self, records: list[Record]) -> None:
        seen: set[str] = set()
        for record in records:
            identity = record.identity
            if identity in self._rows or identity in seen:
                raise DuplicateIdentityError(self.name, identity)
            seen.add(identity)

    def _insert(self, record: Record) -> None:
        key = record.identity
        self._rows[key] = record
        self._keys[id(record)] = key
        record.attach_observer(self._on_field_changed)

    def _detach(self, record: Record) -> None:
        key = self._keys.pop(id(record), None)
        if key is not None and self._rows.get(key) is record:
            del self._rows[key]
        record.detach_observer()

    def _rekey(self, record: Record, new_key: str) -> None:
        old_key = self._keys.get(id(record))
        if old_key is None or old_key == new_key:
            return
        del self._rows[old_key]
        self._rows[new_key] = record
        self._keys[id(record)] = new_key
        for change_set in (self._new, self._modified):
            if change_set.get(old_key) is record:
                del change_set[old_key]
                change_set[new_key] = record

    def _classify_new(self, record: Record) -> None:
        record.row_state = RowState.CREATED
        self._new[self._keys[id(record)]] = record

    def _classify_modified(self, record: Record) -> None:
        key = self._keys[id(record)]
        if key in self._new:
            return
        record.row_state = RowState.MODIFIED
        record.client_id = key
        self._modified[key] = record

    def _fill_unset(self, target: Record, source: Record, *, tracked: bool) -> None:
        values = {
            name: value
            for name, value in source.items()
            if target.is_unset(name) and not target.is_field_changed(name)
        }
        if tracked:
            target.assign(values)
        else:
            target.merge_untracked(values)

    def _on_field_changed(self, record: Record, name: str) -> None:
        with self._lock:
            key = self._keys.get(id(record))
            if key is None or self._rows.get(key) is not record:
                return
            identity = record.identity
            if identity != key:
                if identity in self._rows:
                    logger.warning(
                        "Table %s: identity %s already in use, row stays under %s",
                        self.name,
                        identity,
                        key,
                    )
                else:
                    self._rekey(record, identity)
            self._classify_modified(record)

    @staticmethod
    def _candidate_ids(count: int) -> Iterator[str]:
        if count == 1:
            yield "0"
        n = -1
        while True:
            yield str(n)
            n -= 1

    def __repr__(self) -> str:
        return (
            f"Table(name={self.name!r}, rows={len(self._rows)}, new={len(self._new)}, "
            f"modified={len(self._modified)}, deleted={len(self._deleted)})"
        )
