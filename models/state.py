from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from .wire import WireModel


class StatsSnapshot(WireModel):
    current_counter: Optional[int] = None
    total_generated: Optional[int] = None
    available_gaps: Optional[int] = None
    average_latency_ms: Optional[float] = None
    sequences_by_site_partition: Optional[Dict[str, int]] = None


class HealthStatus(WireModel):
    healthy: bool
    current_counter: Optional[int] = None


class HealthIndicator(str, Enum):
    """What the health badge shows. ``UNREACHABLE`` is not ``UNHEALTHY``."""

    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNREACHABLE = "unreachable"

    @classmethod
    def from_status(cls, status: Optional[HealthStatus]) -> "HealthIndicator":
        if status is None:
            return cls.UNKNOWN
        return cls.HEALTHY if status.healthy else cls.UNHEALTHY
