"""Projection of dashboard state into chart-ready series.

Everything here is a pure function of its inputs so repeated renders with
the same history and snapshot produce equal :class:`ChartData`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from models.events import SequenceEvent
from models.state import StatsSnapshot

TIME_LABEL_FORMAT = "%H:%M:%S"


@dataclass(frozen=True)
class Series:
    labels: Tuple[str, ...] = ()
    values: Tuple[int, ...] = ()

    def __len__(self) -> int:
        return len(self.values)

    def as_dict(self) -> Dict[str, Any]:
        return {"labels": list(self.labels), "data": list(self.values)}


@dataclass(frozen=True)
class ChartData:
    timeline: Series = Series()
    distribution: Series = Series()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timeline": self.timeline.as_dict(),
            "distribution": self.distribution.as_dict(),
        }


def project_timeline(events: Iterable[SequenceEvent]) -> Series:
    """Pair each event's time label with its sequence number, in the order given."""
    labels = []
    values = []
    for event in events:
        labels.append(event.timestamp.strftime(TIME_LABEL_FORMAT))
        values.append(event.sequence_number)
    return Series(tuple(labels), tuple(values))


def project_distribution(stats: Optional[StatsSnapshot]) -> Series:
    if stats is None or not stats.sequences_by_site_partition:
        return Series()
    counts = stats.sequences_by_site_partition
    return Series(tuple(counts.keys()), tuple(counts.values()))


def project(history, stats: Optional[StatsSnapshot]) -> ChartData:
    """Build both series; ``history`` is a :class:`~dashboard.history.HistoryBuffer`."""
    return ChartData(
        timeline=project_timeline(history.to_chronological()),
        distribution=project_distribution(stats),
    )
