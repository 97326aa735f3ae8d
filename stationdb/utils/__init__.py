"""Utility modules for stationdb."""

from stationdb.utils.constants import ErrorCode, ERROR_MESSAGES
from stationdb.utils.exceptions import (
    StationDBError,
    PoolExhaustedError,
    BackendError,
    BackendUnavailableError,
    OperationTimeoutError,
    DiscoveryError,
    StructureApplyError,
    InvalidRequestError,
)

__all__ = [
    "ErrorCode",
    "ERROR_MESSAGES",
    "StationDBError",
    "PoolExhaustedError",
    "BackendError",
    "BackendUnavailableError",
    "OperationTimeoutError",
    "DiscoveryError",
    "StructureApplyError",
    "InvalidRequestError",
]
