from .record import (
    MISSING,
    Record,
    RecordSchema,
    RowState,
    CLIENT_ID_KEY,
    ROW_STATE_KEY,
    SERVER_ID_KEY,
)
from .table import MergeMode, Table
from .dataset import Dataset, extract_rows, unwrap_payload
from .query import QueryRequest
from .request import DataRequest, OperationType

__all__ = [
    "MISSING",
    "Record",
    "RecordSchema",
    "RowState",
    "CLIENT_ID_KEY",
    "ROW_STATE_KEY",
    "SERVER_ID_KEY",
    "MergeMode",
    "Table",
    "Dataset",
    "extract_rows",
    "unwrap_payload",
    "QueryRequest",
    "DataRequest",
    "OperationType",
]
