"""Schema reconciler: detect declared structure changes and apply them."""

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from stationdb.models.structure import StructureDescriptor
from stationdb.models.sync import (
    ChangeKind,
    ReconcilerStatus,
    StructureResult,
    SyncOutcome,
    SyncPhase,
    SyncRun,
    SyncTrigger,
)
from stationdb.services.discovery import DiscoveryProvider
from stationdb.services.pooled_api import PooledApi, error_message
from stationdb.utils.exceptions import StructureApplyError

logger = logging.getLogger("schema-reconciler")


def classify(
    last_applied: Mapping[str, StructureDescriptor],
    descriptor: StructureDescriptor
) -> ChangeKind:
    """Classify a discovered structure against last-applied state.

    Args:
        last_applied: Map of structure name to last successfully applied shape.
        descriptor: Freshly discovered structure.

    Returns:
        NEW, CHANGED or UNCHANGED.
    """
    existing = last_applied.get(descriptor.name)
    if existing is None:
        return ChangeKind.NEW
    if existing.differs_from(descriptor):
        return ChangeKind.CHANGED
    return ChangeKind.UNCHANGED


class SchemaReconciler:
    """Keeps remote table structures in line with declared structures.

    State machine per run: idle -> scanning -> diffing -> applying -> idle.
    Only one run is ever in flight; concurrent triggers join it, so the
    last-applied map has a single writer.
    """

    def __init__(
        self,
        api: PooledApi,
        providers: Iterable[DiscoveryProvider],
        *,
        auto_sync: bool = True,
        sync_interval: float = 300.0,
        backup_enabled: bool = True,
        history_size: int = 20
    ):
        """Initialize the reconciler.

        Args:
            api: Pooled façade used for every backend call.
            providers: Discovery sources, queried in order on each scan.
            auto_sync: Arm the recurring timer on ``start``.
            sync_interval: Seconds between timer-driven scans.
            backup_enabled: Back up a table before applying a changed shape.
            history_size: Number of finished runs to keep.
        """
        if sync_interval <= 0:
            raise ValueError("sync_interval must be positive")
        self.api = api
        self.providers = list(providers)
        self.auto_sync = auto_sync
        self.sync_interval = sync_interval
        self.backup_enabled = backup_enabled

        self._last_applied: dict[str, StructureDescriptor] = {}
        self._monitoring = False
        self._timer: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None
        self._phase = SyncPhase.IDLE
        self._history: deque[SyncRun] = deque(maxlen=history_size)
        self._total_runs = 0
        self._total_failures = 0

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    @property
    def sync_in_progress(self) -> bool:
        return self._current is not None and not self._current.done()

    async def start(self) -> Optional[SyncRun]:
        """Run one immediate scan, then arm the timer if auto-sync is on.

        Returns:
            The initial run, or None if already monitoring.
        """
        if self._monitoring:
            logger.debug("Auto-sync monitoring already running")
            return None

        self._monitoring = True
        logger.info("Starting auto-sync monitoring...")
        try:
            run = await self.trigger_sync(SyncTrigger.TIMER)
        except BaseException:
            # Leave the reconciler restartable when the initial scan is cancelled
            self._monitoring = False
            raise

        # stop() may have been called while the initial scan ran
        if self.auto_sync and self._monitoring and self._timer is None:
            self._timer = asyncio.create_task(
                self._timer_loop(), name="schema-reconciler-timer"
            )
        return run

    def stop(self) -> None:
        """Cancel future timer ticks. An in-flight scan runs to completion."""
        was_monitoring = self._monitoring
        self._monitoring = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if was_monitoring:
            logger.info("Auto-sync monitoring stopped")

    async def aclose(self) -> None:
        """Stop monitoring and wait for any in-flight scan."""
        timer = self._timer
        self.stop()
        pending = [t for t in (timer, self._current) if t is not None and not t.done()]
        if pending:
            await asyncio.wait(pending)

    async def trigger_sync(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> SyncRun:
        """Run a scan-and-apply cycle, or join the one already in flight.

        Args:
            trigger: What caused this sync.

        Returns:
            The finished run.
        """
        task = self._current
        if task is None or task.done():
            if trigger == SyncTrigger.MANUAL:
                logger.info("Manual sync triggered")
            task = asyncio.create_task(self._execute(trigger), name="schema-reconciler-scan")
            self._current = task
        else:
            logger.info("Sync already in progress; joining the running scan")
        return await asyncio.shield(task)

    def get_detected_structures(self) -> list[StructureDescriptor]:
        """Get the last successfully applied structures."""
        return [s.model_copy(deep=True) for s in self._last_applied.values()]

    def get_history(self) -> list[SyncRun]:
        """Get finished runs, oldest first."""
        return list(self._history)

    def get_status(self) -> ReconcilerStatus:
        """Get read-only reconciler diagnostics."""
        last_run = self._history[-1] if self._history else None
        return ReconcilerStatus(
            monitoring=self._monitoring,
            phase=self._phase,
            auto_sync=self.auto_sync,
            sync_interval=self.sync_interval,
            structure_count=len(self._last_applied),
            sync_in_progress=self.sync_in_progress,
            last_sync=last_run.finished_at if last_run else None,
            last_run=last_run,
            total_runs=self._total_runs,
            total_failures=self._total_failures
        )

    async def _timer_loop(self) -> None:
        while self._monitoring:
            await asyncio.sleep(self.sync_interval)
            if not self._monitoring:
                break
            logger.info("Performing periodic sync...")
            try:
                await self.trigger_sync(SyncTrigger.TIMER)
            except Exception:
                logger.exception("Error during periodic sync")

    async def _execute(self, trigger: SyncTrigger) -> SyncRun:
        run = SyncRun(trigger=trigger, started_at=datetime.now(timezone.utc))
        try:
            self._phase = SyncPhase.SCANNING
            discovered = await self._discover(run)
            run.scanned = [d.name for d in discovered]

            self._phase = SyncPhase.DIFFING
            plan = [(d, classify(self._last_applied, d)) for d in discovered]
            run.changed = [d.name for d, kind in plan if kind != ChangeKind.UNCHANGED]

            for descriptor, kind in plan:
                if kind == ChangeKind.UNCHANGED:
                    run.results.append(
                        StructureResult(name=descriptor.name, outcome=SyncOutcome.UNCHANGED)
                    )
                    continue
                self._phase = SyncPhase.APPLYING
                run.results.append(await self._apply(descriptor, kind))
        finally:
            self._phase = SyncPhase.IDLE
            run.finished_at = datetime.now(timezone.utc)
            self._history.append(run)
            self._total_runs += 1
            self._total_failures += len(run.failed)

        logger.info(
            "Scanned %d structures (%d changed, %d failed)",
            len(run.scanned), len(run.changed), len(run.failed)
        )
        return run

    async def _discover(self, run: SyncRun) -> list[StructureDescriptor]:
        seen: dict[str, StructureDescriptor] = {}
        for provider in self.providers:
            provider_name = type(provider).__name__
            try:
                structures = [
                    s if isinstance(s, StructureDescriptor)
                    else StructureDescriptor.model_validate(s)
                    for s in await provider.discover()
                ]
            except Exception as e:
                message = f"{provider_name}: {error_message(e)}"
                logger.error("Error scanning structures from %s", message)
                run.discovery_errors.append(message)
                continue

            for structure in structures:
                if structure.name in seen:
                    logger.warning(
                        "Ignoring duplicate structure %s from %s",
                        structure.name, provider_name
                    )
                    continue
                seen[structure.name] = structure
        return list(seen.values())

    async def _apply(self, descriptor: StructureDescriptor, kind: ChangeKind) -> StructureResult:
        name = descriptor.name
        backup = None
        if kind == ChangeKind.CHANGED and self.backup_enabled:
            backup_response = await self.api.backup_table(name)
            if backup_response.error:
                logger.warning(
                    "Backup failed for %s, continuing with update: %s",
                    name, backup_response.error
                )
            else:
                backup = backup_response.data

        logger.info("%s table: %s", "Creating" if kind == ChangeKind.NEW else "Updating", name)
        try:
            await self._define(descriptor)
        except StructureApplyError as e:
            logger.error("%s", e.message)
            return StructureResult(
                name=name,
                outcome=SyncOutcome.FAILED,
                error=e.message,
                backup=backup
            )

        # Only confirmed applies become the new baseline
        self._last_applied[name] = descriptor
        return StructureResult(
            name=name,
            outcome=SyncOutcome.CREATED if kind == ChangeKind.NEW else SyncOutcome.UPDATED,
            backup=backup
        )

    async def _define(self, descriptor: StructureDescriptor) -> None:
        """Send the full table shape to the backend.

        Raises:
            StructureApplyError: If the backend rejected the definition.
        """
        response = await self.api.define_table(descriptor.to_table_definition())
        if response.error:
            raise StructureApplyError(descriptor.name, response.error)
