from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, List, Optional, Union

from models.events import Notification, NotificationLevel

from .timers import TimerHandle, TimerSource

logger = logging.getLogger(__name__)

NOTIFICATION_TTL = 3.0
EXIT_DELAY = 0.3


class NotificationQueue:
    """Transient toast messages that expire on their own.

    Each notification is live for ``ttl`` seconds, then spends ``exit_delay``
    seconds with ``leaving=True`` before it is removed. Every emit is
    independent: no deduplication and no cap.
    """

    def __init__(
        self,
        timers: TimerSource,
        *,
        ttl: float = NOTIFICATION_TTL,
        exit_delay: float = EXIT_DELAY,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.timers = timers
        self.ttl = ttl
        self.exit_delay = exit_delay
        self.on_change = on_change
        self._live: Dict[str, Notification] = {}
        self._handles: Dict[str, TimerHandle] = {}

    def emit(
        self, message: str, level: Union[NotificationLevel, str] = NotificationLevel.INFO
    ) -> Notification:
        note = Notification(message=message, level=NotificationLevel(level), ttl=self.ttl)
        self._live[note.id] = note
        self._handles[note.id] = self.timers.call_later(
            self.ttl, lambda: self._begin_exit(note.id)
        )
        logger.debug("notification %s [%s] %s", note.id, note.level.value, message)
        self._changed()
        return note

    def dismiss(self, note_id: str) -> bool:
        handle = self._handles.get(note_id)
        if handle is not None:
            handle.cancel()
        return self._remove(note_id)

    def clear(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        if self._live:
            self._live.clear()
            self._changed()

    def visible(self) -> List[Notification]:
        return list(self._live.values())

    def get(self, note_id: str) -> Optional[Notification]:
        return self._live.get(note_id)

    def __len__(self) -> int:
        return len(self._live)

    def __iter__(self) -> Iterator[Notification]:
        return iter(list(self._live.values()))

    # ------------------------------------------------------------------
    def _begin_exit(self, note_id: str) -> None:
        note = self._live.get(note_id)
        if note is None:
            return
        self._live[note_id] = note.model_copy(update={"leaving": True})
        self._handles[note_id] = self.timers.call_later(
            self.exit_delay, lambda: self._remove(note_id)
        )
        self._changed()

    def _remove(self, note_id: str) -> bool:
        self._handles.pop(note_id, None)
        if self._live.pop(note_id, None) is None:
            return False
        self._changed()
        return True

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()
