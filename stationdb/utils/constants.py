# stationdb/utils/constants.py
"""Constants for stationdb."""

from enum import Enum


class ErrorCode(str, Enum):
    """Error code enumeration."""

    POOL_EXHAUSTED = "ERR_POOL_EXHAUSTED"
    BACKEND_ERROR = "ERR_BACKEND"
    BACKEND_UNAVAILABLE = "ERR_BACKEND_UNAVAILABLE"
    OPERATION_TIMEOUT = "ERR_TIMEOUT"
    DISCOVERY_FAILED = "ERR_DISCOVERY"
    STRUCTURE_APPLY_FAILED = "ERR_STRUCTURE_APPLY"
    INVALID_REQUEST = "ERR_INVALID_REQUEST"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.POOL_EXHAUSTED: "No connection slot available",
    ErrorCode.BACKEND_ERROR: "Backend operation failed",
    ErrorCode.BACKEND_UNAVAILABLE: "Backend collaborator is not configured",
    ErrorCode.OPERATION_TIMEOUT: "Backend operation timed out",
    ErrorCode.DISCOVERY_FAILED: "Structure discovery failed",
    ErrorCode.STRUCTURE_APPLY_FAILED: "Failed to apply table structure",
    ErrorCode.INVALID_REQUEST: "Request parameters are missing or malformed",
}
