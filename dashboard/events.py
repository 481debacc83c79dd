from __future__ import annotations

import logging
from typing import Callable, List, Set

logger = logging.getLogger(__name__)

Subscriber = Callable[[str], None]


class StateEvents:
    """
    Purpose: Tell render layers which part of the dashboard state changed.
    While paused, topics are collected and delivered once on resume.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._pending: Set[str] = set()
        self.paused = False

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        self._subscribers.append(fn)

        def unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return unsubscribe

    def publish(self, topic: str) -> None:
        if self.paused:
            self._pending.add(topic)
            return
        for fn in list(self._subscribers):
            try:
                fn(topic)
            except Exception:
                logger.exception("state subscriber failed on %s", topic)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False
        pending = sorted(self._pending)
        self._pending.clear()
        for topic in pending:
            self.publish(topic)
