"""Domain entity: read request parameters and their wire serialisation."""

import json
from dataclasses import dataclass
from typing import Any


@dataclass
class QueryRequest:
    """Parameters of a read operation.

    Serialised either as the bare filter (service declares no capabilities)
    or as a JSON object holding only the keys the service's capability
    string lists.
    """

    filter: str | None = None
    id: str | None = None          # resource-specific unique record id
    skip: int | None = None        # used together with top for paging
    sort: str | None = None
    table_ref: str | None = None   # required for multi-table resources with a filter
    top: int | None = None

    def _wire_items(self) -> list[tuple[str, Any]]:
        return [
            ("filter", self.filter),
            ("id", self.id),
            ("skip", self.skip),
            ("sort", self.sort),
            ("tableRef", self.table_ref),
            ("top", self.top),
        ]

    def serialize(self, capabilities: str | None = None) -> str:
        if not capabilities:
            return self.filter or ""
        declared = capabilities.lower()
        body = {
            key: value
            for key, value in self._wire_items()
            if value is not None and key.lower() in declared
        }
        return json.dumps(body)

    def __str__(self) -> str:
        return self.serialize()
