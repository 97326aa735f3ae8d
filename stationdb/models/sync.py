"""Sync run and reconciler status models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SyncTrigger(str, Enum):
    """What started a sync run."""

    MANUAL = "manual"
    TIMER = "timer"


class SyncPhase(str, Enum):
    """Reconciler state machine phases."""

    IDLE = "idle"
    SCANNING = "scanning"
    DIFFING = "diffing"
    APPLYING = "applying"


class SyncOutcome(str, Enum):
    """Per-structure result of a sync run."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class StructureResult(BaseModel):
    """Outcome for one structure in a sync run."""

    name: str
    outcome: SyncOutcome
    error: Optional[str] = None
    backup: Optional[str] = None


class SyncRun(BaseModel):
    """One scan-and-apply cycle."""

    trigger: SyncTrigger
    started_at: datetime
    finished_at: Optional[datetime] = None
    scanned: list[str] = Field(default_factory=list)
    changed: list[str] = Field(default_factory=list)
    results: list[StructureResult] = Field(default_factory=list)
    discovery_errors: list[str] = Field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        """Names of structures whose apply failed."""
        return [r.name for r in self.results if r.outcome == SyncOutcome.FAILED]

    @property
    def succeeded(self) -> bool:
        """True when no structure failed and every provider answered."""
        return not self.failed and not self.discovery_errors

    def outcome_of(self, name: str) -> Optional[SyncOutcome]:
        """Look up the outcome recorded for a structure name."""
        for result in self.results:
            if result.name == name:
                return result.outcome
        return None


class ReconcilerStatus(BaseModel):
    """Read-only reconciler diagnostics."""

    monitoring: bool
    phase: SyncPhase
    auto_sync: bool
    sync_interval: float
    structure_count: int
    sync_in_progress: bool
    last_sync: Optional[datetime] = None
    last_run: Optional[SyncRun] = None
    total_runs: int = 0
    total_failures: int = 0


class ChangeKind(str, Enum):
    """Classification of a discovered structure against last-applied state."""

    NEW = "new"
    CHANGED = "changed"
    UNCHANGED = "unchanged"
