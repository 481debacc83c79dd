# sequence-dashboard/models/wire.py
# Purpose: Pydantic schemas for the sequence service's JSON payloads.

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Step text fragments the service uses to flag a failed demo step when it
# does not send a structured outcome.
LEGACY_ERROR_MARKERS = ("ERROR", "FAILED")


class WireModel(BaseModel):
    """Base for service payloads: camelCase on the wire, extra fields kept."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


class NextSequenceResponse(WireModel):
    success: bool
    sequence_numbers: List[int] = Field(min_length=1)
    gap_filled: bool = False
    node_id: Optional[str] = None
    processing_time_ms: Optional[float] = None
    site_id: Optional[str] = None
    partition_id: Optional[str] = None
    invoice_type: Optional[str] = None

    @property
    def first_sequence(self) -> int:
        return self.sequence_numbers[0]


class ReleaseResponse(WireModel):
    success: bool
    sequence_number: Optional[int] = None
    message: Optional[str] = None


class ResetResponse(WireModel):
    success: bool
    message: Optional[str] = None


class DemoStep(BaseModel):
    """One line of a demo trace.

    ``outcome`` is the structured result when the service provides one.
    Plain-string steps from older services leave it unset and are classified
    by :data:`LEGACY_ERROR_MARKERS`.
    """

    text: str
    outcome: Optional[Literal["success", "error"]] = None

    @property
    def is_error(self) -> bool:
        if self.outcome is not None:
            return self.outcome == "error"
        return any(marker in self.text for marker in LEGACY_ERROR_MARKERS)


class DemoResult(WireModel):
    name: str
    success: bool
    steps: List[DemoStep] = Field(default_factory=list)
    summary: Optional[str] = None
    sequences: List[int] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def _coerce_steps(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [{"text": s} if isinstance(s, str) else s for s in value]


class GapsResponse(WireModel):
    gaps: List[int] = Field(default_factory=list)
    count: int = 0
    next_gap: Optional[int] = None


class AuditRecord(WireModel):
    audit_id: Optional[str] = None
    sequence_number: int
    site_id: Optional[str] = None
    partition_id: Optional[str] = None
    invoice_type: Optional[str] = None
    operation_type: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None
    timestamp: Optional[str] = None


class IntegrityReport(WireModel):
    valid: bool
    gaps: Optional[List[int]] = None
    duplicates: Optional[List[int]] = None
    summary: Optional[str] = None
    issues: Optional[List[str]] = None


def dump_wire(model: BaseModel) -> Dict[str, Any]:
    """Serialize back to the service's camelCase shape."""
    return model.model_dump(by_alias=True, mode="json")
