from __future__ import annotations

from typing import Optional, Union


class GatewayError(Exception):
    """A call to the sequence service did not produce a usable payload."""

    kind = "gateway"

    def __init__(
        self,
        operation: str,
        cause: Union[BaseException, str],
        *,
        status: Optional[int] = None,
    ) -> None:
        self.operation = operation
        self.cause = cause
        self.status = status
        super().__init__(f"{operation} failed: {self.reason}")

    @property
    def reason(self) -> str:
        text = str(self.cause).strip()
        if text:
            return text
        if isinstance(self.cause, BaseException):
            return type(self.cause).__name__
        return "unknown error"


class TransportFailure(GatewayError):
    """Network unreachable, timeout, or a non-2xx status."""

    kind = "transport"


class ApplicationFailure(GatewayError):
    """2xx response with ``success: false`` or a malformed body."""

    kind = "application"


class ValidationFailure(GatewayError):
    """Caller-supplied identifiers rejected before dispatch."""

    kind = "validation"
