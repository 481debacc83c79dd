from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, Optional

from models.events import SequenceEvent

HISTORY_CAPACITY = 20


class ChronologicalView:
    """Oldest-first view over the buffer; each iteration starts fresh."""

    def __init__(self, items: Deque[SequenceEvent]):
        self._items = items

    def __iter__(self) -> Iterator[SequenceEvent]:
        return reversed(self._items)

    def __len__(self) -> int:
        return len(self._items)


class HistoryBuffer:
    """Newest-first record of generated sequences, capped at ``capacity``."""

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        # appendleft on a bounded deque drops the tail entry once full
        self._items: Deque[SequenceEvent] = deque(maxlen=capacity)

    def push(self, event: SequenceEvent) -> None:
        self._items.appendleft(event)

    def clear(self) -> None:
        self._items.clear()

    def to_chronological(self) -> ChronologicalView:
        return ChronologicalView(self._items)

    @property
    def latest(self) -> Optional[SequenceEvent]:
        return self._items[0] if self._items else None

    def __iter__(self) -> Iterator[SequenceEvent]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> SequenceEvent:
        return self._items[index]
