from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

from gateway.client import SequenceServiceClient
from gateway.errors import GatewayError
from models.events import NotificationLevel

from .state import DashboardState
from .timers import TimerHandle, TimerSource

logger = logging.getLogger(__name__)

STATS_INTERVAL = 3.0
HEALTH_INTERVAL = 5.0

STATS = "stats"
HEALTH = "health"


class Scheduler:
    """Runs the stats and health polls on their own cadences.

    Every tick dispatches a fresh task; a tick never waits for the previous
    one of the same kind, so responses land in completion order. Failures
    stay inside the tick that produced them.
    """

    def __init__(
        self,
        state: DashboardState,
        client: SequenceServiceClient,
        timers: TimerSource,
        *,
        stats_interval: float = STATS_INTERVAL,
        health_interval: float = HEALTH_INTERVAL,
        discard_stale: bool = False,
    ):
        self.state = state
        self.client = client
        self.timers = timers
        self.stats_interval = stats_interval
        self.health_interval = health_interval
        self.discard_stale = discard_stale
        self._handles: List[TimerHandle] = []
        self._inflight: Set[asyncio.Task[None]] = set()
        self._issued: Dict[str, int] = {STATS: 0, HEALTH: 0}
        self._applied: Dict[str, int] = {STATS: 0, HEALTH: 0}
        self._started = False
        self._stopped = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.refresh_stats()
        self.refresh_health()
        self._handles = [
            self.timers.call_every(self.stats_interval, self.refresh_stats),
            self.timers.call_every(self.health_interval, self.refresh_health),
        ]
        logger.info(
            "polling stats every %.1fs, health every %.1fs",
            self.stats_interval,
            self.health_interval,
        )

    async def stop(self) -> None:
        self._stopped = True
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        tasks = list(self._inflight)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    async def drain(self) -> None:
        """Wait until no poll is in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    def set_visible(self, visible: bool) -> bool:
        changed = self.state.set_visible(visible)
        if changed and visible:
            self.refresh_stats()
            self.refresh_health()
        return changed

    def refresh_stats(self) -> Optional[asyncio.Task[None]]:
        return self._dispatch(STATS, self._poll_stats)

    def refresh_health(self) -> Optional[asyncio.Task[None]]:
        return self._dispatch(HEALTH, self._poll_health)

    # ------------------------------------------------------------------
    def _dispatch(
        self, kind: str, poll: Callable[[int], Awaitable[None]]
    ) -> Optional[asyncio.Task[None]]:
        if self._stopped:
            return None
        self._issued[kind] += 1
        ticket = self._issued[kind]
        task = asyncio.get_running_loop().create_task(poll(ticket))
        self._inflight.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("poll task crashed", exc_info=exc)

    def _is_stale(self, kind: str, ticket: int) -> bool:
        if not self.discard_stale or ticket > self._applied[kind]:
            return False
        logger.debug("dropping stale %s response #%d", kind, ticket)
        return True

    def _apply(self, kind: str, ticket: int) -> None:
        self._applied[kind] = max(self._applied[kind], ticket)

    def _report(self, message: str) -> None:
        if self.state.visible:
            self.state.notify(message, NotificationLevel.ERROR)

    async def _poll_stats(self, ticket: int) -> None:
        try:
            snapshot = await self.client.stats()
        except GatewayError as exc:
            if self._is_stale(STATS, ticket):
                return
            logger.warning("stats poll #%d failed: %s", ticket, exc.reason)
            self._report(f"Statistics update failed: {exc.reason}")
            return
        if self._is_stale(STATS, ticket):
            return
        self._apply(STATS, ticket)
        self.state.set_stats(snapshot)

    async def _poll_health(self, ticket: int) -> None:
        try:
            status = await self.client.health()
        except GatewayError as exc:
            if self._is_stale(HEALTH, ticket):
                return
            self._apply(HEALTH, ticket)
            logger.warning("health poll #%d failed: %s", ticket, exc.reason)
            self.state.mark_unreachable(exc.reason)
            self._report(f"Cannot connect to system: {exc.reason}")
            return
        if self._is_stale(HEALTH, ticket):
            return
        self._apply(HEALTH, ticket)
        self.state.set_health(status)

