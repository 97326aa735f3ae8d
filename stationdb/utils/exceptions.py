# stationdb/utils/exceptions.py
"""Exception classes for stationdb."""

from stationdb.utils.constants import ErrorCode, ERROR_MESSAGES


class StationDBError(Exception):
    """Base exception class for stationdb."""

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        details: dict | None = None
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "Unknown error")
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert the exception to a dictionary format.

        Returns:
            A dictionary representation of the error.
        """
        return {
            "status": "error",
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details
            }
        }


class PoolExhaustedError(StationDBError):
    """Raised when the admission pool has no free slot."""

    def __init__(self, maximum: int, message: str | None = None):
        super().__init__(
            code=ErrorCode.POOL_EXHAUSTED,
            message=message or f"Connection pool exhausted ({maximum}/{maximum} in use)",
            details={"maximum": maximum}
        )


class BackendError(StationDBError):
    """Backend operation error."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            code=ErrorCode.BACKEND_ERROR,
            message=message,
            details=details
        )


class BackendUnavailableError(StationDBError):
    """A required backend collaborator was not configured."""

    def __init__(self, collaborator: str):
        super().__init__(
            code=ErrorCode.BACKEND_UNAVAILABLE,
            message=f"No {collaborator} backend configured",
            details={"collaborator": collaborator}
        )


class OperationTimeoutError(StationDBError):
    """Backend operation exceeded its time budget."""

    def __init__(self, label: str, seconds: float):
        super().__init__(
            code=ErrorCode.OPERATION_TIMEOUT,
            message=f"{label} timed out after {seconds}s",
            details={"label": label, "timeout_seconds": seconds}
        )


class DiscoveryError(StationDBError):
    """Structure discovery error."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCode.DISCOVERY_FAILED,
            message=message
        )


class StructureApplyError(StationDBError):
    """Applying a table structure to the backend failed."""

    def __init__(self, structure: str, reason: str):
        super().__init__(
            code=ErrorCode.STRUCTURE_APPLY_FAILED,
            message=f"Failed to apply structure {structure}: {reason}",
            details={"structure": structure}
        )


class InvalidRequestError(StationDBError):
    """Request validation error."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCode.INVALID_REQUEST,
            message=message
        )
