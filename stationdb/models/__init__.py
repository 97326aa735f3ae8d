"""Data models for stationdb."""

from stationdb.models.pool import (
    PoolStatus,
    ConnectionHandle,
    PoolStats,
)
from stationdb.models.api import (
    ApiResponse,
    Filter,
    PageQuery,
    BulkOperation,
    BulkItemResult,
)
from stationdb.models.structure import (
    ScalarType,
    RenderHint,
    StructureCategory,
    FieldDescriptor,
    FieldDefinition,
    TableDefinitionRequest,
    StructureDescriptor,
    format_display_name,
)
from stationdb.models.sync import (
    SyncTrigger,
    SyncPhase,
    SyncOutcome,
    ChangeKind,
    StructureResult,
    SyncRun,
    ReconcilerStatus,
)

__all__ = [
    "PoolStatus",
    "ConnectionHandle",
    "PoolStats",
    "ApiResponse",
    "Filter",
    "PageQuery",
    "BulkOperation",
    "BulkItemResult",
    "ScalarType",
    "RenderHint",
    "StructureCategory",
    "FieldDescriptor",
    "FieldDefinition",
    "TableDefinitionRequest",
    "StructureDescriptor",
    "format_display_name",
    "SyncTrigger",
    "SyncPhase",
    "SyncOutcome",
    "ChangeKind",
    "StructureResult",
    "SyncRun",
    "ReconcilerStatus",
]
