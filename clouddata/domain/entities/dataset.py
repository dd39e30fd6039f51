"""Domain entity: a named group of tables imported from a service payload."""

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from clouddata.domain.entities.record import RESERVED_PREFIX, RecordSchema
from clouddata.domain.entities.table import MergeMode, Table

logger = logging.getLogger(__name__)

BEFORE_KEY = "prods:before"
HAS_CHANGES_KEY = "prods:hasChanges"


def unwrap_payload(payload: Mapping[str, Any]) -> tuple[str | None, Mapping[str, Any]]:
    """Split ``{"dsName": {...}}`` into its name and body.

    A payload whose only non-reserved key maps to an object is treated as a
    wrapped dataset; anything else is already a body of ``table → rows``.
    """
    keys = [k for k in payload if not k.startswith(RESERVED_PREFIX)]
    if len(keys) == 1 and isinstance(payload[keys[0]], Mapping):
        return keys[0], payload[keys[0]]
    return None, payload


def extract_rows(payload: Mapping[str, Any] | None, table_name: str) -> list[Mapping[str, Any]]:
    """Return the rows for ``table_name`` from a wrapped or bare payload."""
    if not payload:
        return []
    _, body = unwrap_payload(payload)
    rows = body.get(table_name)
    return list(rows) if isinstance(rows, list) else []


class Dataset:
    """Named group of tables plus the server's before-image and change flag.

    ``main_table`` names the table that drives identity lookups for
    single-table resources.
    """

    def __init__(
        self,
        name: str = "",
        *,
        main_table: str | None = None,
        schemas: Mapping[str, RecordSchema] | None = None,
    ):
        self.name = name
        self.main_table = main_table
        self.before: dict[str, Any] | None = None
        self.has_changes = False
        self._schemas = dict(schemas or {})
        self._tables: dict[str, Table] = {}

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        main_table: str | None = None,
        schemas: Mapping[str, RecordSchema] | None = None,
    ) -> "Dataset":
        dataset = cls(main_table=main_table, schemas=schemas)
        dataset.import_payload(payload)
        return dataset

    def import_payload(
        self, payload: Mapping[str, Any], merge_mode: MergeMode = MergeMode.EMPTY
    ) -> None:
        """Populate or merge tables from a server payload; ``prods:`` keys are metadata."""
        name, body = unwrap_payload(payload)
        if name:
            self.name = name
        self.before = body.get(BEFORE_KEY)
        self.has_changes = bool(body.get(HAS_CHANGES_KEY, False))

        for key, rows in body.items():
            if key.startswith(RESERVED_PREFIX):
                continue
            if not isinstance(rows, list):
                logger.debug("Dataset %s: skipping non-table key %s", self.name, key)
                continue
            self.ensure_table(key).load(rows, merge_mode)

    def ensure_table(self, name: str) -> Table:
        table = self._tables.get(name)
        if table is None:
            table = Table(name, schema=self._schemas.get(name))
            self._tables[name] = table
        return table

    @property
    def main(self) -> Table | None:
        if self.main_table is None:
            return None
        return self._tables.get(self.main_table)

    @property
    def tables(self) -> Mapping[str, Table]:
        return dict(self._tables)

    def get(self, name: str) -> Table | None:
        return self._tables.get(name)

    def __getitem__(self, name: str) -> Table:
        return self._tables[name]

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __iter__(self) -> Iterator[str]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    @property
    def is_changed(self) -> bool:
        return any(t.is_changed for t in self._tables.values())

    def accept(self) -> None:
        for table in self._tables.values():
            table.accept()

    def reject(self) -> None:
        for table in self._tables.values():
            table.reject()

    def clear(self) -> None:
        for table in self._tables.values():
            table.clear()
        self._tables.clear()
        self.before = None
        self.has_changes = False

    def to_payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {name: t.to_payload() for name, t in self._tables.items()}
        return {self.name: body} if self.name else body

    def __repr__(self) -> str:
        return f"Dataset(name={self.name!r}, tables={list(self._tables)})"
