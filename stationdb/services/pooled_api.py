"""Pooled execution façade: acquire, execute, release, and a uniform result."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, Union

from pydantic import ValidationError

from stationdb.models.api import ApiResponse, BulkItemResult, BulkOperation, PageQuery
from stationdb.models.pool import ConnectionHandle, PoolStats
from stationdb.models.structure import TableDefinitionRequest
from stationdb.services.admission import AdmissionPool
from stationdb.services.backend import AuthBackend, StorageBackend, TableBackend
from stationdb.services.metrics import OperationMetrics
from stationdb.utils.constants import ErrorCode
from stationdb.utils.exceptions import (
    BackendUnavailableError,
    OperationTimeoutError,
    StationDBError,
)

logger = logging.getLogger("pooled-api")

T = TypeVar("T")


def error_message(error: BaseException) -> str:
    """Get a non-empty, human-readable message for an exception."""
    if isinstance(error, StationDBError):
        return error.message
    return str(error) or type(error).__name__


def error_response(error: BaseException) -> ApiResponse:
    """Convert an exception into an error envelope."""
    if isinstance(error, StationDBError):
        code = error.code
    elif isinstance(error, ValidationError):
        code = ErrorCode.INVALID_REQUEST
    else:
        code = ErrorCode.BACKEND_ERROR
    return ApiResponse(error=error_message(error), code=code.value)


class PooledApi:
    """Uniform wrapper around every backend call.

    Every operation runs between an admission-pool acquire and a guaranteed
    release, and every failure comes back as ``ApiResponse(error=...)``
    instead of an exception. Cancellation is the one exception that is
    propagated (after the handle is released).
    """

    def __init__(
        self,
        pool: AdmissionPool,
        backend: TableBackend,
        *,
        auth: Optional[AuthBackend] = None,
        storage: Optional[StorageBackend] = None,
        wait_for_slot: bool = False,
        acquire_timeout: Optional[float] = 10.0,
        operation_timeout: Optional[float] = None,
        metrics: Optional[OperationMetrics] = None
    ):
        """Initialize the façade.

        Args:
            pool: Admission pool used for every call.
            backend: Table backend collaborator.
            auth: Optional authentication collaborator.
            storage: Optional file storage collaborator.
            wait_for_slot: Queue for a slot at the hard cap instead of failing.
            acquire_timeout: Maximum seconds to queue when ``wait_for_slot``.
            operation_timeout: Per-operation time budget; None disables it.
            metrics: Optional per-label metrics collector.
        """
        self.pool = pool
        self.backend = backend
        self.auth = auth
        self.storage = storage
        self.wait_for_slot = wait_for_slot
        self.acquire_timeout = acquire_timeout
        self.operation_timeout = operation_timeout
        self.metrics = metrics

    async def execute_with_connection(
        self,
        operation: Callable[[str], Awaitable[T]],
        label: str = "API Operation"
    ) -> Union[T, ApiResponse]:
        """Run ``operation`` while holding a pooled connection.

        Args:
            operation: Coroutine function receiving the connection id.
            label: Operation label used in logs and metrics.

        Returns:
            The operation's result unchanged, or an error ApiResponse.
        """
        start = time.perf_counter()
        try:
            handle = await self._acquire(label)
        except StationDBError as e:
            logger.error("[%s] Error: %s", label, e.message)
            self._record(label, start, e.code.value)
            return error_response(e)

        logger.info("[%s] Using connection: %s", label, handle.id)
        outcome: Optional[str] = "CancelledError"
        try:
            result = await self._run(operation, handle, label)
            outcome = None
            if isinstance(result, ApiResponse) and result.error:
                outcome = result.code or "ApiError"
            return result
        except Exception as e:
            outcome = type(e).__name__
            logger.error("[%s] Error: %s", label, error_message(e))
            return error_response(e)
        finally:
            self.pool.release(handle)
            logger.info("[%s] Released connection: %s", label, handle.id)
            self._record(label, start, outcome)

    async def table_page(
        self,
        table: str,
        query: Union[PageQuery, dict, None] = None
    ) -> ApiResponse:
        """Read one page of rows from a table."""
        return await self._call(
            f"tablePage-{table}",
            lambda: self.backend.table_page(table, _page_query(query))
        )

    async def table_create(self, table: str, data: dict[str, Any]) -> ApiResponse:
        """Insert a row."""
        return await self._call(
            f"tableCreate-{table}",
            lambda: self.backend.table_create(table, data)
        )

    async def table_update(self, table: str, data: dict[str, Any]) -> ApiResponse:
        """Update a row identified by ``data["id"]``."""
        return await self._call(
            f"tableUpdate-{table}",
            lambda: self.backend.table_update(table, data)
        )

    async def table_delete(self, table: str, params: dict[str, Any]) -> ApiResponse:
        """Delete a row identified by ``params["id"]``."""
        return await self._call(
            f"tableDelete-{table}",
            lambda: self.backend.table_delete(table, params)
        )

    async def upload(
        self,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None
    ) -> ApiResponse:
        """Upload a file through the storage collaborator."""
        return await self._call(
            f"upload-{filename}",
            lambda: self._storage().upload(filename, content, content_type)
        )

    async def login(self, email: str, password: str) -> ApiResponse:
        return await self._call("login", lambda: self._auth().login(email, password))

    async def register(self, email: str, password: str) -> ApiResponse:
        return await self._call("register", lambda: self._auth().register(email, password))

    async def get_user_info(self) -> ApiResponse:
        return await self._call("getUserInfo", lambda: self._auth().get_user_info())

    async def logout(self) -> ApiResponse:
        return await self._call("logout", lambda: self._auth().logout())

    async def define_table(self, request: TableDefinitionRequest) -> ApiResponse:
        """Create or redeclare a table structure."""
        return await self._call(
            f"defineTable-{request.name}",
            lambda: self.backend.define_table(request)
        )

    async def backup_table(self, name: str) -> ApiResponse:
        """Snapshot a table's data before a structural change."""
        return await self._call(
            f"backupTable-{name}",
            lambda: self.backend.backup_table(name)
        )

    async def bulk_table_operations(
        self,
        operations: Iterable[Union[BulkOperation, dict]]
    ) -> ApiResponse:
        """Run many create/update/delete requests on one connection.

        Each item is isolated: a failing item is reported in its own
        ``BulkItemResult`` and the remaining items still run.

        Args:
            operations: Bulk requests, as models or plain dicts.

        Returns:
            ApiResponse whose ``data`` is one BulkItemResult per request.
        """
        items = list(operations)

        async def operation(connection_id: str) -> ApiResponse:
            logger.info(
                "[bulkOperations] Executing %d bulk operations with connection %s",
                len(items), connection_id
            )
            results = [await self._run_bulk_item(item) for item in items]
            return ApiResponse(data=results)

        return await self.execute_with_connection(operation, "bulkOperations")

    async def health_check(self) -> ApiResponse:
        """Report pool pressure, backend reachability and operation metrics."""
        stats = self.pool.stats()
        return ApiResponse(data={
            "pool": stats.model_dump(mode="json"),
            "status": stats.status.value,
            "backend": await self._probe_backend(),
            "operations": self.metrics.snapshot()["operations"] if self.metrics else {},
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    def get_connection_stats(self) -> PoolStats:
        """Get the admission pool snapshot."""
        return self.pool.stats()

    async def _acquire(self, label: str) -> ConnectionHandle:
        if self.wait_for_slot:
            return await self.pool.acquire_wait(label, timeout=self.acquire_timeout)
        return self.pool.acquire(label)

    async def _run(
        self,
        operation: Callable[[str], Awaitable[T]],
        handle: ConnectionHandle,
        label: str
    ) -> T:
        if self.operation_timeout is None:
            return await operation(handle.id)
        try:
            return await asyncio.wait_for(operation(handle.id), self.operation_timeout)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(label, self.operation_timeout)

    async def _call(
        self,
        label: str,
        call: Callable[[], Awaitable[Any]]
    ) -> ApiResponse:
        async def operation(connection_id: str) -> ApiResponse:
            logger.debug("[%s] Calling backend with connection %s", label, connection_id)
            return ApiResponse.coerce(await call())

        return await self.execute_with_connection(operation, label)

    async def _run_bulk_item(self, item: Union[BulkOperation, dict]) -> BulkItemResult:
        try:
            request = item if isinstance(item, BulkOperation) else BulkOperation.model_validate(item)
            action = {
                "create": self.backend.table_create,
                "update": self.backend.table_update,
                "delete": self.backend.table_delete,
            }[request.type]
            response = ApiResponse.coerce(await action(request.table, request.data))
        except Exception as e:
            logger.warning("[bulkOperations] Item failed: %s", error_message(e))
            return BulkItemResult(success=False, error=error_message(e))

        if response.error:
            logger.warning("[bulkOperations] Item failed: %s", response.error)
            return BulkItemResult(success=False, error=response.error)
        return BulkItemResult(success=True, result=response.data)

    async def _probe_backend(self) -> dict[str, Any]:
        ping = getattr(self.backend, "ping", None)
        if ping is None:
            return {"connected": None, "latency_ms": None, "error": None}
        response = await self._call("ping", ping)
        return {
            "connected": response.ok,
            "latency_ms": response.data if response.ok else None,
            "error": response.error
        }

    def _auth(self) -> AuthBackend:
        if self.auth is None:
            raise BackendUnavailableError("auth")
        return self.auth

    def _storage(self) -> StorageBackend:
        if self.storage is None:
            raise BackendUnavailableError("storage")
        return self.storage

    def _record(self, label: str, start: float, outcome: Optional[str]) -> None:
        if self.metrics is None:
            return
        self.metrics.record(
            label=label,
            success=outcome is None,
            duration_ms=(time.perf_counter() - start) * 1000,
            error_type=outcome
        )


def _page_query(query: Union[PageQuery, dict, None]) -> PageQuery:
    if isinstance(query, PageQuery):
        return query
    return PageQuery.model_validate(query or {})
