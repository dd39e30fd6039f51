"""Pydantic schemas for service catalogs: services, resources, operations and table schemas.

A catalog is the JSON description a data service publishes of its resources:

    {"version": "1.3", "services": [{"name": ..., "address": "/CustomerService",
      "resources": [{"name": "Customer", "path": "/Customer",
                     "operations": [{"type": "read", "path": "?filter={filter}", ...}],
                     "schema": {"properties": {"dsCustomer": {"properties": {
                         "ttCustomer": {"primaryKey": ["CustNum"], "items": {...}}}}}}}]}]}
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from clouddata.domain.entities import MergeMode, OperationType, RecordSchema

# Verb used when an operation does not declare one
_DEFAULT_VERBS: dict[OperationType, str] = {
    OperationType.CREATE: "POST",
    OperationType.READ: "GET",
    OperationType.UPDATE: "PUT",
    OperationType.INVOKE: "PUT",
    OperationType.SUBMIT: "PUT",
    OperationType.DELETE: "DELETE",
}


class _CatalogModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ParamDefinition(_CatalogModel):
    name: str = ""
    param_type: str | None = None
    x_type: str | None = None
    is_array: bool = False


class OperationDefinition(_CatalogModel):
    """One operation of a resource (built-in CRUD or named invoke)."""

    name: str = ""
    path: str = ""
    type: OperationType = OperationType.INVOKE
    verb: str | None = None
    capabilities: str | None = None
    mapping_type: str | None = None
    merge_mode: MergeMode | None = None
    use_before_image: bool = False
    params: list[ParamDefinition] = Field(default_factory=list)

    @field_validator("type", "merge_mode", mode="before")
    @classmethod
    def _lowercase_enum(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @property
    def http_method(self) -> str:
        return (self.verb or _DEFAULT_VERBS[self.type]).upper()


class RelationDefinition(_CatalogModel):
    relation_name: str = ""
    parent_name: str = ""
    child_name: str = ""
    relation_fields: list[dict[str, str]] = Field(default_factory=list)


class FieldDefinition(_CatalogModel):
    type: str | None = None
    abl_type: str | None = None
    default: Any = None
    title: str | None = None
    required: bool = False
    format: str | None = None


class TableDefinition(_CatalogModel):
    """Schema of one table: its primary key and field definitions."""

    type: str | None = None
    primary_key: list[str] = Field(default_factory=list)
    properties: dict[str, FieldDefinition] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _flatten_items(cls, data: Any) -> Any:
        # field definitions live under "items" for array-typed tables
        if isinstance(data, dict) and "items" in data and "properties" not in data:
            data = {**data, "properties": (data.get("items") or {}).get("properties", {})}
        return data

    @field_validator("primary_key", mode="before")
    @classmethod
    def _coerce_primary_key(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    def record_schema(self) -> RecordSchema:
        return RecordSchema(
            primary_key=self.primary_key[0] if self.primary_key else None,
            defaults={
                name: definition.default
                for name, definition in self.properties.items()
                if definition.default is not None
            },
        )


class SchemaDefinition(_CatalogModel):
    """Resource schema, normalised to ``dataset name → tables``."""

    dataset_name: str | None = None
    tables: dict[str, TableDefinition] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "tables" in data:
            return data
        properties = data.get("properties") or {}
        if not properties:
            return {}
        first_name, first = next(iter(properties.items()))
        if isinstance(first, dict) and "properties" in first and "items" not in first:
            return {"dataset_name": first_name, "tables": first["properties"]}
        # single temp-table resource: tables directly under the schema
        return {"tables": properties}


class ResourceDefinition(_CatalogModel):
    name: str
    path: str = ""
    id_property: str | None = None
    display_name: str | None = None
    auto_save: bool = False
    operations: list[OperationDefinition] = Field(default_factory=list)
    relations: list[RelationDefinition] = Field(default_factory=list)
    schema_definition: SchemaDefinition | None = Field(default=None, alias="schema")

    def find_operation(
        self, operation_type: OperationType, name: str | None = None
    ) -> OperationDefinition | None:
        return next(
            (
                op
                for op in self.operations
                if op.type is operation_type and (not name or op.name == name)
            ),
            None,
        )

    @property
    def tables(self) -> dict[str, TableDefinition]:
        return self.schema_definition.tables if self.schema_definition else {}

    @property
    def main_table(self) -> str | None:
        """First relation's parent table, else the first table of the schema."""
        if self.relations:
            return self.relations[0].parent_name
        return next(iter(self.tables), None)

    def primary_key(self, table_name: str) -> str | None:
        definition = self.tables.get(table_name)
        if definition is None or not definition.primary_key:
            return None
        return definition.primary_key[0]

    def record_schemas(self) -> dict[str, RecordSchema]:
        return {name: definition.record_schema() for name, definition in self.tables.items()}


class ServiceDefinition(_CatalogModel):
    name: str
    address: str = ""
    use_request: bool = False
    send_only_changes: bool = False
    unwrapped: bool = Field(default=False, alias="unWrapped")
    use_x_client_props: bool = False
    tenant_id: str | None = None
    app_id: str | None = None
    resources: list[ResourceDefinition] = Field(default_factory=list)


class CatalogDefinition(_CatalogModel):
    version: str | float | None = None
    last_modified: str | None = None
    services: list[ServiceDefinition] = Field(default_factory=list)
