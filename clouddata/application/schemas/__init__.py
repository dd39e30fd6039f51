from .catalog import (
    CatalogDefinition,
    FieldDefinition,
    OperationDefinition,
    ParamDefinition,
    RelationDefinition,
    ResourceDefinition,
    SchemaDefinition,
    ServiceDefinition,
    TableDefinition,
)

__all__ = [
    "CatalogDefinition",
    "FieldDefinition",
    "OperationDefinition",
    "ParamDefinition",
    "RelationDefinition",
    "ResourceDefinition",
    "SchemaDefinition",
    "ServiceDefinition",
    "TableDefinition",
]
