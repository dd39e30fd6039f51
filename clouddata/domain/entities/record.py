"""Domain entity: one row of field values with pending-change tracking."""

import copy
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import uuid4

# Reserved wire keys, never imported as fields
RESERVED_PREFIX = "prods:"
ROW_STATE_KEY = "prods:rowState"
CLIENT_ID_KEY = "prods:clientId"
SERVER_ID_KEY = "prods:id"


class RowState(str, Enum):
    """Submission intent attached to a row inside a save batch."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


class _Missing:
    """Prior value logged for a field that did not exist before it was assigned."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

FieldObserver = Callable[["Record", str], None]


@dataclass(frozen=True)
class RecordSchema:
    """Per-table record configuration: identity field and default values.

    Replaces typed record subclasses; every difference between tables is
    expressed as data here rather than through inheritance.
    """

    primary_key: str | None = None
    defaults: Mapping[str, Any] = field(default_factory=dict)

    def default(self, name: str) -> Any:
        return self.defaults.get(name)


_DEFAULT_SCHEMA = RecordSchema()


class Record:
    """A single row of a table.

    Field assignment goes through :meth:`set`, which logs the first prior value
    of every overwritten field and notifies the observer registered by the
    owning table. ``accept_changes`` makes edits durable, ``reject_changes``
    rolls them back.

    Identity is the primary-key field when the schema names one and the field
    is populated; otherwise an opaque token generated at construction.
    """

    def __init__(
        self,
        values: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
        *,
        schema: RecordSchema | None = None,
    ):
        self._schema = schema or _DEFAULT_SCHEMA
        self._fields: dict[str, Any] = dict(values or {})
        self._change_log: dict[str, Any] = {}
        self._token = uuid4().hex
        self._revision = 0
        self._observer: FieldObserver | None = None
        self.row_state: RowState | None = None
        self.client_id: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any], schema: RecordSchema | None = None) -> "Record":
        """Build a record from a server row, dropping reserved ``prods:`` keys."""
        return cls(
            {k: v for k, v in data.items() if not k.startswith(RESERVED_PREFIX)},
            schema=schema,
        )

    # ── Schema ──────────────────────────────────────────────────────

    @property
    def schema(self) -> RecordSchema:
        return self._schema

    def bind_schema(self, schema: RecordSchema) -> None:
        """Adopt a table's schema when the record was built without one."""
        if self._schema is _DEFAULT_SCHEMA:
            self._schema = schema

    def default(self, name: str) -> Any:
        return self._schema.default(name)

    def is_unset(self, name: str) -> bool:
        """True when a field is absent, ``None``, or still at its schema default."""
        if name not in self._fields or self._fields[name] is None:
            return True
        return name in self._schema.defaults and self._fields[name] == self._schema.defaults[name]

    # ── Identity ────────────────────────────────────────────────────

    @property
    def identity(self) -> str:
        return self.get_identity()

    def get_identity(self) -> str:
        pk = self._schema.primary_key
        if pk:
            value = self._fields.get(pk)
            if value is not None and value != "":
                return str(value)
        return self._token

    def set_identity(self, value: str) -> None:
        """Assign the identity without change tracking or notification."""
        pk = self._schema.primary_key
        if pk:
            self._fields[pk] = value
        else:
            self._token = value

    @property
    def is_new(self) -> bool:
        """True for client-only rows: identity is not a positive integer."""
        try:
            return int(self.get_identity()) <= 0
        except ValueError:
            return True

    @property
    def changed_key_value(self) -> str:
        """Identity as it was before any pending edit of the primary-key field."""
        pk = self._schema.primary_key
        if pk and pk in self._change_log:
            prior = self._change_log[pk]
            if prior is not MISSING and prior is not None and prior != "":
                return str(prior)
        return self.get_identity()

    # ── Field access ────────────────────────────────────────────────

    @property
    def fields(self) -> Mapping[str, Any]:
        return MappingProxyType(self._fields)

    def get(self, name: str, default: Any = None) -> Any:
        return self._fields.get(name, default)

    def set(self, name: str, value: Any) -> None:
        if name not in self._change_log:
            self._change_log[name] = self._fields.get(name, MISSING)
        self._fields[name] = value
        self._revision += 1
        if self._observer is not None:
            self._observer(self, name)

    def assign(self, values: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> None:
        """Tracked bulk update of several fields."""
        items = values.items() if isinstance(values, Mapping) else values
        for name, value in items:
            self.set(name, value)

    def merge_untracked(self, values: Mapping[str, Any]) -> None:
        """Overwrite fields with server-confirmed values; nothing is logged."""
        for name, value in values.items():
            if not name.startswith(RESERVED_PREFIX):
                self._fields[name] = value

    def __getitem__(self, name: str) -> Any:
        return self._fields[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def keys(self):
        return self._fields.keys()

    def items(self):
        return self._fields.items()

    # ── Change tracking ─────────────────────────────────────────────

    @property
    def change_log(self) -> Mapping[str, Any]:
        return MappingProxyType(self._change_log)

    @property
    def is_changed(self) -> bool:
        return bool(self._change_log)

    @property
    def revision(self) -> int:
        """Count of tracked assignments; tells whether a row was edited after it was sent."""
        return self._revision

    def is_field_changed(self, name: str) -> bool:
        return name in self._change_log

    def accept_changes(self) -> None:
        self._change_log.clear()

    def inherit_change_log(self, previous: "Record") -> None:
        """Log the prior state of ``previous`` so rejecting restores it.

        Used when this record takes the place of another one with the same
        identity; fields already logged here keep their own prior value.
        """
        for name in [*previous.keys(), *self._fields]:
            if name in self._change_log:
                continue
            prior = previous.change_log.get(name, previous.fields.get(name, MISSING))
            if prior is MISSING and name not in self._fields:
                continue
            if name in self._fields and prior is not MISSING and prior == self._fields[name]:
                continue
            self._change_log[name] = prior

    def reject_changes(self) -> None:
        for name, prior in self._change_log.items():
            if prior is MISSING:
                self._fields.pop(name, None)
            else:
                self._fields[name] = prior
        self._change_log.clear()

    # ── Observer ────────────────────────────────────────────────────

    def attach_observer(self, observer: FieldObserver) -> None:
        self._observer = observer

    def detach_observer(self) -> None:
        self._observer = None

    # ── Copy / serialisation ────────────────────────────────────────

    def clone(self) -> "Record":
        """Independent snapshot: same identity, fields, log and markers; no observer."""
        twin = Record(copy.deepcopy(self._fields), schema=self._schema)
        twin._token = self._token
        twin._change_log = copy.deepcopy(self._change_log)
        twin._revision = self._revision
        twin.row_state = self.row_state
        twin.client_id = self.client_id
        return twin

    def to_dict(self) -> dict[str, Any]:
        return dict(self._fields)

    def to_payload(self) -> dict[str, Any]:
        """Serialise for a save batch, adding the ``prods:`` markers when classified."""
        payload = dict(self._fields)
        if self.row_state is not None:
            payload[ROW_STATE_KEY] = self.row_state.value
            payload[CLIENT_ID_KEY] = self.client_id or self.get_identity()
            if self.row_state is RowState.MODIFIED:
                payload[SERVER_ID_KEY] = self.changed_key_value
        return payload

    # ── Equality ────────────────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self.get_identity() == other.get_identity()

    def __hash__(self) -> int:
        return hash(self.get_identity())

    def __repr__(self) -> str:
        return f"Record(identity={self.get_identity()!r}, fields={self._fields!r})"
