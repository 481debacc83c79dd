from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .wire import NextSequenceResponse

RESET_DETAILS = "System reset - ready for new sequences"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SequenceEvent(BaseModel):
    """A generated sequence number as recorded in the local history."""

    model_config = ConfigDict(frozen=True)

    sequence_number: int
    site_id: str
    partition_id: str
    invoice_type: str
    gap_filled: bool = False
    timestamp: datetime = Field(default_factory=_utcnow)
    processing_time_ms: Optional[float] = None

    @classmethod
    def from_response(
        cls,
        resp: NextSequenceResponse,
        *,
        site_id: str,
        partition_id: str,
        invoice_type: str,
    ) -> "SequenceEvent":
        return cls(
            sequence_number=resp.first_sequence,
            site_id=site_id,
            partition_id=partition_id,
            invoice_type=invoice_type,
            gap_filled=resp.gap_filled,
            processing_time_ms=resp.processing_time_ms,
        )

    @property
    def site_partition(self) -> str:
        return f"{self.site_id}-{self.partition_id}"


class LastSequence(BaseModel):
    """Contents of the "last sequence" panel; ``sequence_number`` None is the placeholder."""

    sequence_number: Optional[int] = None
    details: str = ""

    @classmethod
    def from_response(
        cls, resp: NextSequenceResponse, event: SequenceEvent
    ) -> "LastSequence":
        site = resp.site_id or event.site_id
        partition = resp.partition_id or event.partition_id
        invoice_type = resp.invoice_type or event.invoice_type
        parts = [f"Site: {site} • Partition: {partition} • Type: {invoice_type}"]
        if resp.gap_filled:
            parts.append("(Gap Filled!)")
        if resp.node_id:
            parts.append(f"• Node: {resp.node_id}")
        if resp.processing_time_ms:
            parts.append(f"• {resp.processing_time_ms:g}ms")
        return cls(sequence_number=event.sequence_number, details=" ".join(parts))

    @classmethod
    def placeholder(cls, details: str = RESET_DETAILS) -> "LastSequence":
        return cls(sequence_number=None, details=details)

    @property
    def display(self) -> str:
        return "-" if self.sequence_number is None else str(self.sequence_number)


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
    message: str
    level: NotificationLevel = NotificationLevel.INFO
    created_at: datetime = Field(default_factory=_utcnow)
    ttl: float
    leaving: bool = False


class TraceLine(BaseModel):
    """One rendered line of the demo trace panel."""

    text: str
    style: str = "info"
