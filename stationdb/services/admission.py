"""Connection admission pool: accounting and backpressure for backend calls."""

import asyncio
import logging
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from stationdb.models.pool import ConnectionHandle, PoolStats, PoolStatus
from stationdb.utils.exceptions import PoolExhaustedError

logger = logging.getLogger("admission-pool")


class AdmissionPool:
    """Tracks in-flight logical connections and reports load pressure.

    This class provides:
    - Non-blocking acquire/release accounting
    - Pressure and health status derived from configured thresholds
    - Optional queued admission via ``acquire_wait``

    The pool only rejects when the hard cap is reached; below it, callers
    are expected to consult ``pressure()`` or ``status()`` for backpressure.
    """

    def __init__(
        self,
        maximum: int = 100,
        warning_threshold: float = 0.70,
        critical_threshold: float = 0.85
    ):
        """Initialize the pool.

        Args:
            maximum: Hard cap on concurrently active connections.
            warning_threshold: Pressure at which status becomes warning.
            critical_threshold: Pressure at which status becomes critical.

        Raises:
            ValueError: If the limits are inconsistent.
        """
        if maximum < 1:
            raise ValueError("maximum must be at least 1")
        for threshold in (warning_threshold, critical_threshold):
            if not 0 < threshold <= 1:
                raise ValueError("thresholds must be in (0, 1]")
        if warning_threshold > critical_threshold:
            raise ValueError("warning_threshold must not exceed critical_threshold")

        self.maximum = maximum
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold

        self._active: dict[str, ConnectionHandle] = {}
        self._waiters: deque[tuple[asyncio.Future, str]] = deque()
        self._sequence = 0
        self._peak_active = 0
        self._total_acquired = 0
        self._total_released = 0
        self._rejected = 0
        self._last_status = PoolStatus.HEALTHY

    @property
    def active(self) -> int:
        """Number of handles currently in flight."""
        return len(self._active)

    def acquire(self, tag: str = "operation") -> ConnectionHandle:
        """Issue a handle without waiting.

        Args:
            tag: Operation label kept on the handle for diagnostics.

        Returns:
            A fresh connection handle.

        Raises:
            PoolExhaustedError: If the hard cap is reached.
        """
        if self.active >= self.maximum:
            self._rejected += 1
            logger.warning(
                "Rejecting %s: pool at hard cap (%d/%d)",
                tag, self.active, self.maximum
            )
            raise PoolExhaustedError(self.maximum)
        return self._issue(tag)

    async def acquire_wait(
        self,
        tag: str = "operation",
        timeout: Optional[float] = None
    ) -> ConnectionHandle:
        """Issue a handle, queueing until a slot frees up.

        Slots released while callers are queued are handed over directly in
        FIFO order, so a queued caller cannot be overtaken by ``acquire``.

        Args:
            tag: Operation label kept on the handle for diagnostics.
            timeout: Maximum seconds to wait; None waits indefinitely.

        Returns:
            A fresh connection handle.

        Raises:
            PoolExhaustedError: If no slot became free within ``timeout``.
        """
        if self.active < self.maximum and not self._waiters:
            return self._issue(tag)

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future = loop.create_future()
        entry = (waiter, tag)
        self._waiters.append(entry)
        logger.info(
            "Queueing %s for a connection slot (%d waiting)",
            tag, len(self._waiters)
        )
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            if waiter.done() and not waiter.cancelled():
                return waiter.result()
            self._rejected += 1
            logger.warning("Timed out after %ss waiting for a slot: %s", timeout, tag)
            raise PoolExhaustedError(
                self.maximum,
                message=f"Timed out after {timeout}s waiting for a connection slot"
            )
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                self.release(waiter.result())
            raise
        finally:
            try:
                self._waiters.remove(entry)
            except ValueError:
                pass

    def release(self, handle: Optional[ConnectionHandle]) -> None:
        """Return a handle to the pool.

        Never raises. Double releases and foreign handles are logged and
        ignored.

        Args:
            handle: The handle returned by ``acquire``.
        """
        if handle is None:
            logger.warning("Ignoring release of a missing handle")
            return
        if handle.pool_id != id(self) or handle.id not in self._active:
            if handle.released:
                logger.warning("Ignoring double release of %s (%s)", handle.id, handle.tag)
            else:
                logger.warning("Ignoring release of unknown handle %s (%s)", handle.id, handle.tag)
            return

        del self._active[handle.id]
        handle.released = True
        self._total_released += 1
        self._track_status()
        self._hand_off()

    def pressure(self) -> float:
        """Ratio of active to maximum connections, in [0, 1]."""
        return self.active / self.maximum

    def status(self) -> PoolStatus:
        """Health status for the current pressure."""
        return self._status_for(self.pressure())

    def stats(self) -> PoolStats:
        """Get a snapshot of pool accounting."""
        oldest = None
        if self._active:
            now = time.monotonic()
            oldest = max(now - h.acquired_at for h in self._active.values())
        pressure = self.pressure()
        return PoolStats(
            active=self.active,
            maximum=self.maximum,
            pressure=pressure,
            status=self._status_for(pressure),
            peak_active=self._peak_active,
            total_acquired=self._total_acquired,
            total_released=self._total_released,
            rejected=self._rejected,
            waiting=len(self._waiters),
            oldest_in_flight_seconds=oldest
        )

    def in_flight(self) -> list[ConnectionHandle]:
        """Get a copy of the handles currently in flight."""
        return list(self._active.values())

    @asynccontextmanager
    async def connection(self, tag: str = "operation") -> AsyncIterator[ConnectionHandle]:
        """Acquire a handle for the duration of an ``async with`` block."""
        handle = self.acquire(tag)
        try:
            yield handle
        finally:
            self.release(handle)

    def _issue(self, tag: str) -> ConnectionHandle:
        self._sequence += 1
        handle = ConnectionHandle(
            id=f"conn_{self._sequence}_{uuid.uuid4().hex[:8]}",
            tag=tag,
            acquired_at=time.monotonic(),
            pool_id=id(self)
        )
        self._active[handle.id] = handle
        self._total_acquired += 1
        self._peak_active = max(self._peak_active, self.active)
        self._track_status()
        return handle

    def _hand_off(self) -> None:
        """Give a freed slot to the oldest live waiter."""
        while self._waiters and self.active < self.maximum:
            waiter, tag = self._waiters.popleft()
            if waiter.done():
                continue
            waiter.set_result(self._issue(tag))

    def _status_for(self, pressure: float) -> PoolStatus:
        if pressure >= self.critical_threshold:
            return PoolStatus.CRITICAL
        if pressure >= self.warning_threshold:
            return PoolStatus.WARNING
        return PoolStatus.HEALTHY

    def _track_status(self) -> None:
        """Log pressure status transitions."""
        current = self.status()
        if current == self._last_status:
            return
        level = logging.INFO if current == PoolStatus.HEALTHY else logging.WARNING
        logger.log(
            level,
            "Pool status %s -> %s (%d/%d, pressure %.2f)",
            self._last_status.value, current.value,
            self.active, self.maximum, self.pressure()
        )
        self._last_status = current
