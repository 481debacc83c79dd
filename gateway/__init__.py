# sequence-dashboard/gateway/__init__.py
# Purpose: Remote access to the sequence-generation service.
from __future__ import annotations

from .client import SequenceServiceClient
from .errors import ApplicationFailure, GatewayError, TransportFailure, ValidationFailure

__all__ = [
    "SequenceServiceClient",
    "GatewayError",
    "TransportFailure",
    "ApplicationFailure",
    "ValidationFailure",
]
