"""Admission pool data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PoolStatus(str, Enum):
    """Health status derived from pool pressure."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class ConnectionHandle:
    """Accounting token for one in-flight backend operation.

    Handles are issued by an AdmissionPool and are never reused. Only the
    issuing pool flips ``released``.
    """
    id: str
    tag: str
    acquired_at: float
    acquired_wall: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    pool_id: int = 0
    released: bool = False


class PoolStats(BaseModel):
    """Snapshot of admission pool accounting."""

    active: int
    maximum: int
    pressure: float
    status: PoolStatus
    peak_active: int = 0
    total_acquired: int = 0
    total_released: int = 0
    rejected: int = 0
    waiting: int = 0
    oldest_in_flight_seconds: Optional[float] = None
