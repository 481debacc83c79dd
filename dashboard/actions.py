# sequence-dashboard/dashboard/actions.py
# Purpose: User-triggered operations and the state changes that follow them.

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Mapping, Optional, TypeVar, Union

from gateway.client import SequenceServiceClient
from gateway.errors import GatewayError
from models.events import LastSequence, NotificationLevel, SequenceEvent, TraceLine
from models.wire import (
    AuditRecord,
    DemoResult,
    GapsResponse,
    IntegrityReport,
    NextSequenceResponse,
)

from .scheduler import Scheduler
from .state import DashboardState
from .timers import TimerSource

logger = logging.getLogger(__name__)

RELEASE_SETTLE_DELAY = 0.5
DEMO_SETTLE_DELAY = 1.0
RESET_PROMPT = (
    "Are you sure you want to reset the entire system? "
    "This will clear all sequence data!"
)

ConfirmFn = Callable[[str], Awaitable[bool]]
T = TypeVar("T")


def render_demo_trace(result: DemoResult) -> List[TraceLine]:
    lines = [
        TraceLine(
            text=f"{result.name} - {'SUCCESS' if result.success else 'FAILED'}",
            style="success" if result.success else "error",
        )
    ]
    for step in result.steps:
        lines.append(TraceLine(text=step.text, style="error" if step.is_error else "success"))
    if result.summary:
        lines.append(TraceLine(text=f"Summary: {result.summary}", style="summary"))
    return lines


class ActionOrchestrator:
    """Runs generate / release / reset / demo against the service.

    A failed action never touches state that is already displayed.
    """

    def __init__(
        self,
        state: DashboardState,
        client: SequenceServiceClient,
        scheduler: Scheduler,
        timers: TimerSource,
        *,
        confirm: Optional[ConfirmFn] = None,
    ):
        self.state = state
        self.client = client
        self.scheduler = scheduler
        self.timers = timers
        self.confirm = confirm

    async def generate(
        self, site_id: str, partition_id: str, invoice_type: str
    ) -> NextSequenceResponse:
        logger.info("generating sequence for %s-%s-%s", site_id, partition_id, invoice_type)
        try:
            resp = await self.client.next_sequence(site_id, partition_id, invoice_type)
        except GatewayError as exc:
            self.state.notify(f"Error: {exc.reason}", NotificationLevel.ERROR)
            raise
        event = SequenceEvent.from_response(
            resp, site_id=site_id, partition_id=partition_id, invoice_type=invoice_type
        )
        self.state.record_sequence(event, LastSequence.from_response(resp, event))
        self.state.notify(
            f"Generated sequence {event.sequence_number}", NotificationLevel.SUCCESS
        )
        return resp

    async def release(
        self,
        sequence_number: int,
        site_id: str,
        partition_id: str,
        reason: str = "manual-release",
    ) -> bool:
        logger.info("releasing sequence %s", sequence_number)
        try:
            await self.client.release(sequence_number, site_id, partition_id, reason)
        except GatewayError as exc:
            self.state.notify(
                f"Error releasing sequence: {exc.reason}", NotificationLevel.ERROR
            )
            return False
        self.state.notify(f"Released sequence {sequence_number}", NotificationLevel.WARNING)
        self.timers.call_later(RELEASE_SETTLE_DELAY, self.scheduler.refresh_stats)
        return True

    async def reset(self, confirm: Optional[ConfirmFn] = None) -> bool:
        ask = confirm or self.confirm
        if ask is None or not await ask(RESET_PROMPT):
            logger.info("reset not confirmed")
            return False
        logger.warning("resetting system")
        try:
            await self.client.reset()
        except GatewayError as exc:
            self.state.notify(f"Reset failed: {exc.reason}", NotificationLevel.ERROR)
            return False
        self.state.clear_history()
        self.scheduler.refresh_stats()
        self.state.notify("System reset successfully", NotificationLevel.SUCCESS)
        return True

    async def run_demo(
        self,
        demo_type: str,
        params: Optional[Mapping[str, Union[str, int]]] = None,
    ) -> Optional[DemoResult]:
        logger.info("running %s demo", demo_type)
        self.state.set_demo_trace(
            [TraceLine(text=f"Running {demo_type} demonstration...", style="pending")]
        )
        try:
            result = await self.client.run_demo(demo_type, params)
        except GatewayError as exc:
            self.state.set_demo_trace(
                [TraceLine(text=f"Demo Failed: {exc.reason}", style="error")]
            )
            self.state.notify(f"Demo {demo_type} failed: {exc.reason}", NotificationLevel.ERROR)
            return None
        self.state.set_demo_trace(render_demo_trace(result))
        self.timers.call_later(DEMO_SETTLE_DELAY, self.scheduler.refresh_stats)
        return result

    # read-only inspection; failures notify and re-raise like generate
    async def gaps(self) -> GapsResponse:
        return await self._inspect("gaps", self.client.gaps())

    async def audit(
        self, limit: int = 100, *, sequence_number: Optional[int] = None
    ) -> List[AuditRecord]:
        return await self._inspect(
            "audit", self.client.audit(limit, sequence_number=sequence_number)
        )

    async def validate(self) -> IntegrityReport:
        report = await self._inspect("validate", self.client.validate_integrity())
        if report.valid:
            self.state.notify("Sequence integrity verified", NotificationLevel.SUCCESS)
        else:
            self.state.notify(
                f"Integrity issues: {report.summary or 'see report'}",
                NotificationLevel.WARNING,
            )
        return report

    async def _inspect(self, label: str, call: Awaitable[T]) -> T:
        logger.info("fetching %s", label)
        try:
            return await call
        except GatewayError as exc:
            self.state.notify(f"Error loading {label}: {exc.reason}", NotificationLevel.ERROR)
            raise
