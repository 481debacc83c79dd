"""Cancellable timer handles used by every delayed or repeating dashboard task."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Callback = Callable[[], object]


class TimerHandle:
    def __init__(self) -> None:
        self._cancelled = False
        self._inner: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._inner is not None:
            self._inner.cancel()
            self._inner = None


def _run_guarded(callback: Callback) -> None:
    try:
        callback()
    except Exception:
        logger.exception("timer callback %r failed", callback)


class TimerSource(abc.ABC):
    """Where delayed callbacks come from; tests swap in a manual clock."""

    @abc.abstractmethod
    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        raise NotImplementedError

    @abc.abstractmethod
    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        """Invoke ``callback`` every ``interval`` seconds until cancelled.

        The first call happens one interval from now.
        """
        raise NotImplementedError


class LoopTimers(TimerSource):
    """Timers backed by the running asyncio loop."""

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle()
        loop = asyncio.get_running_loop()

        def fire() -> None:
            handle._inner = None
            if not handle.cancelled:
                _run_guarded(callback)

        handle._inner = loop.call_later(max(delay, 0.0), fire)
        return handle

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        handle = TimerHandle()
        loop = asyncio.get_running_loop()
        next_at = loop.time() + interval

        def fire() -> None:
            nonlocal next_at
            if handle.cancelled:
                return
            # next tick is armed before the callback runs; ticks missed while
            # the loop was stalled are skipped, not replayed
            next_at += interval
            now = loop.time()
            if next_at <= now:
                next_at = now + interval
            handle._inner = loop.call_at(next_at, fire)
            _run_guarded(callback)

        handle._inner = loop.call_at(next_at, fire)
        return handle
