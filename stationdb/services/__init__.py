"""Service modules for stationdb."""

from stationdb.services.admission import AdmissionPool
from stationdb.services.database import (
    create_pool,
    check_connection,
    close_pool,
)
from stationdb.services.backend import (
    TableBackend,
    AuthBackend,
    StorageBackend,
    PostgresBackend,
    MemoryBackend,
)
from stationdb.services.metrics import OperationMetrics, OperationSummary
from stationdb.services.pooled_api import PooledApi
from stationdb.services.discovery import (
    DiscoveryProvider,
    StaticDiscoveryProvider,
    StructureRegistry,
    FileDiscoveryProvider,
    descriptor_from_model,
)
from stationdb.services.reconciler import SchemaReconciler, classify

__all__ = [
    # Admission
    "AdmissionPool",
    # Database
    "create_pool",
    "check_connection",
    "close_pool",
    # Backends
    "TableBackend",
    "AuthBackend",
    "StorageBackend",
    "PostgresBackend",
    "MemoryBackend",
    # Metrics
    "OperationMetrics",
    "OperationSummary",
    # Façade
    "PooledApi",
    # Discovery
    "DiscoveryProvider",
    "StaticDiscoveryProvider",
    "StructureRegistry",
    "FileDiscoveryProvider",
    "descriptor_from_model",
    # Reconciliation
    "SchemaReconciler",
    "classify",
]
