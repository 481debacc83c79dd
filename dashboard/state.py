from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from models.events import (
    LastSequence,
    Notification,
    NotificationLevel,
    SequenceEvent,
    TraceLine,
)
from models.state import HealthIndicator, HealthStatus, StatsSnapshot
from models.wire import dump_wire

from .charts import ChartData, project
from .events import StateEvents
from .history import HISTORY_CAPACITY, HistoryBuffer
from .notifications import NotificationQueue
from .timers import TimerSource

EMPTY_DETAILS = "No sequences generated yet"


class DashboardState:
    """Everything the dashboard shows, owned by one session.

    Components receive this object by reference. Mutators publish a topic on
    :attr:`events` so render layers know what to redraw.
    """

    def __init__(
        self,
        timers: TimerSource,
        *,
        history_capacity: int = HISTORY_CAPACITY,
        events: Optional[StateEvents] = None,
    ):
        self.events = events or StateEvents()
        self.history = HistoryBuffer(history_capacity)
        self.stats: Optional[StatsSnapshot] = None
        self.health: Optional[HealthStatus] = None
        self.health_indicator = HealthIndicator.UNKNOWN
        self.health_error: Optional[str] = None
        self.last_sequence = LastSequence.placeholder(EMPTY_DETAILS)
        self.demo_trace: List[TraceLine] = []
        self.charts = ChartData()
        self.visible = True
        self.notifications = NotificationQueue(
            timers, on_change=lambda: self.events.publish("notifications")
        )

    # ------------------------------------------------------------------
    def notify(
        self, message: str, level: Union[NotificationLevel, str] = NotificationLevel.INFO
    ) -> Notification:
        return self.notifications.emit(message, level)

    def set_stats(self, snapshot: StatsSnapshot) -> None:
        self.stats = snapshot
        self.events.publish("stats")
        self.refresh_charts()

    def set_health(self, status: HealthStatus) -> None:
        self.health = status
        self.health_error = None
        self.health_indicator = HealthIndicator.from_status(status)
        self.events.publish("health")

    def mark_unreachable(self, reason: str) -> None:
        self.health = None
        self.health_error = reason
        self.health_indicator = HealthIndicator.UNREACHABLE
        self.events.publish("health")

    def record_sequence(self, event: SequenceEvent, last: LastSequence) -> None:
        self.history.push(event)
        self.last_sequence = last
        self.events.publish("history")
        self.events.publish("last_sequence")
        self.refresh_charts()

    def clear_history(self) -> None:
        self.history.clear()
        self.last_sequence = LastSequence.placeholder()
        self.events.publish("history")
        self.events.publish("last_sequence")
        self.refresh_charts()

    def set_demo_trace(self, lines: List[TraceLine]) -> None:
        self.demo_trace = list(lines)
        self.events.publish("demo")

    def refresh_charts(self) -> bool:
        """Re-project the charts; publishes only when the series changed."""
        data = project(self.history, self.stats)
        if data == self.charts:
            return False
        self.charts = data
        self.events.publish("charts")
        return True

    def set_visible(self, visible: bool) -> bool:
        if visible == self.visible:
            return False
        self.visible = visible
        if visible:
            self.events.resume()
            self.events.publish("visibility")
        else:
            self.events.publish("visibility")
            self.events.pause()
        return True

    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        return {
            "visible": self.visible,
            "lastSequence": {
                "sequence": self.last_sequence.sequence_number,
                "display": self.last_sequence.display,
                "details": self.last_sequence.details,
            },
            "history": [
                {
                    "sequence": e.sequence_number,
                    "siteId": e.site_id,
                    "partitionId": e.partition_id,
                    "invoiceType": e.invoice_type,
                    "isGapFilled": e.gap_filled,
                    "timestamp": e.timestamp.isoformat(),
                    "processingTime": e.processing_time_ms,
                }
                for e in self.history
            ],
            "stats": dump_wire(self.stats) if self.stats else None,
            "health": {
                "indicator": self.health_indicator.value,
                "healthy": self.health.healthy if self.health else None,
                "currentCounter": self.health.current_counter if self.health else None,
                "error": self.health_error,
            },
            "charts": self.charts.as_dict(),
            "notifications": [
                n.model_dump(mode="json") for n in self.notifications.visible()
            ],
            "demo": [line.model_dump() for line in self.demo_trace],
        }
