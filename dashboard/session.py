from __future__ import annotations

import logging
from typing import Optional

from config import Settings
from gateway.client import SequenceServiceClient

from .actions import ActionOrchestrator, ConfirmFn
from .scheduler import Scheduler
from .state import DashboardState
from .timers import LoopTimers, TimerSource

logger = logging.getLogger(__name__)


class DashboardSession:
    """Builds the state, scheduler and orchestrator for one dashboard session."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: Optional[SequenceServiceClient] = None,
        timers: Optional[TimerSource] = None,
        confirm: Optional[ConfirmFn] = None,
    ):
        self.settings = settings
        self.timers = timers or LoopTimers()
        self.client = client or SequenceServiceClient(
            settings.api_url, timeout=settings.api_timeout
        )
        self.state = DashboardState(self.timers)
        self.scheduler = Scheduler(
            self.state,
            self.client,
            self.timers,
            stats_interval=settings.stats_interval,
            health_interval=settings.health_interval,
            discard_stale=settings.discard_stale,
        )
        self.actions = ActionOrchestrator(
            self.state, self.client, self.scheduler, self.timers, confirm=confirm
        )
        self._closed = False

    async def start(self) -> None:
        logger.info("dashboard session watching %s", self.settings.api_url)
        self.scheduler.start()

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.scheduler.stop()
        self.state.notifications.clear()
        await self.client.close()
