"""Typed client for the sequence-generation service REST API."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, TypeAdapter, ValidationError

from models.state import HealthStatus, StatsSnapshot
from models.wire import (
    AuditRecord,
    DemoResult,
    GapsResponse,
    IntegrityReport,
    NextSequenceResponse,
    ReleaseResponse,
    ResetResponse,
)

from .errors import ApplicationFailure, GatewayError, TransportFailure, ValidationFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
API_PREFIX = "/api/v1"
UA = "sequence-dashboard/1.0"

M = TypeVar("M", bound=BaseModel)

_AUDIT_ADAPTER = TypeAdapter(List[AuditRecord])


def _require(operation: str, **identifiers: Any) -> None:
    for name, value in identifiers.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationFailure(operation, f"{name} is required")


def _describe_validation(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
    return f"unexpected response: {err.get('msg', 'invalid')} at '{loc}'"


def _server_message(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        for key in ("error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class SequenceServiceClient:
    """Access point for every remote operation the dashboard performs.

    Each method returns the decoded payload or raises a
    :class:`~gateway.errors.GatewayError` subclass naming the operation. The
    client never caches and never retries.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "SequenceServiceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": UA, "Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Union[str, int]]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{API_PREFIX}{path}"
        kwargs: Dict[str, Any] = {}
        if params:
            kwargs["params"] = {k: str(v) for k, v in params.items()}
        if body is not None:
            kwargs["json"] = body
        try:
            async with self._get_session().request(method, url, **kwargs) as resp:
                try:
                    data = await resp.json(content_type=None)
                except (json.JSONDecodeError, UnicodeDecodeError):
                    data = None
                if not 200 <= resp.status < 300:
                    reason = _server_message(data) or f"HTTP {resp.status}"
                    raise TransportFailure(operation, reason, status=resp.status)
                if data is None:
                    raise ApplicationFailure(
                        operation, "response body is not JSON", status=resp.status
                    )
                return data
        except GatewayError as exc:
            logger.warning("%s", exc)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            failure = TransportFailure(operation, exc)
            logger.warning("%s", failure)
            raise failure from exc

    def _parse(self, operation: str, model: Type[M], data: Any) -> M:
        if isinstance(data, dict) and data.get("success") is False:
            reason = _server_message(data) or "service reported success=false"
            logger.warning("%s rejected by service: %s", operation, reason)
            raise ApplicationFailure(operation, reason)
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            failure = ApplicationFailure(operation, _describe_validation(exc))
            logger.warning("%s", failure)
            raise failure from exc

    # ------------------------------------------------------------------
    async def next_sequence(
        self, site_id: str, partition_id: str, invoice_type: str
    ) -> NextSequenceResponse:
        op = "next-sequence"
        _require(op, site_id=site_id, partition_id=partition_id, invoice_type=invoice_type)
        data = await self._request(
            op,
            "GET",
            "/sequence/next",
            params={
                "siteId": site_id,
                "partitionId": partition_id,
                "invoiceType": invoice_type,
            },
        )
        return self._parse(op, NextSequenceResponse, data)

    async def stats(self) -> StatsSnapshot:
        data = await self._request("stats", "GET", "/sequence/stats")
        return self._parse("stats", StatsSnapshot, data)

    async def health(self) -> HealthStatus:
        data = await self._request("health", "GET", "/sequence/health")
        return self._parse("health", HealthStatus, data)

    async def release(
        self,
        sequence_number: int,
        site_id: str,
        partition_id: str,
        reason: str = "manual-release",
    ) -> ReleaseResponse:
        op = "release"
        _require(op, site_id=site_id, partition_id=partition_id)
        if isinstance(sequence_number, bool) or not isinstance(sequence_number, int):
            raise ValidationFailure(op, "sequence_number must be an integer")
        data = await self._request(
            op,
            "POST",
            "/sequence/release",
            body={
                "sequenceNumber": sequence_number,
                "siteId": site_id,
                "partitionId": partition_id,
                "reason": reason,
            },
        )
        return self._parse(op, ReleaseResponse, data)

    async def reset(self) -> ResetResponse:
        data = await self._request("reset", "POST", "/sequence/reset")
        return self._parse("reset", ResetResponse, data)

    async def run_demo(
        self, demo_type: str, params: Optional[Mapping[str, Union[str, int]]] = None
    ) -> DemoResult:
        op = "demo"
        _require(op, demo_type=demo_type)
        data = await self._request(
            op, "POST", f"/demo/{quote(demo_type.strip(), safe='')}", params=params
        )
        # A demo that ran but reported success=false is still a result to show.
        try:
            return DemoResult.model_validate(data)
        except ValidationError as exc:
            failure = ApplicationFailure(op, _describe_validation(exc))
            logger.warning("%s", failure)
            raise failure from exc

    async def gaps(self) -> GapsResponse:
        data = await self._request("gaps", "GET", "/sequence/gaps")
        return self._parse("gaps", GapsResponse, data)

    async def audit(
        self, limit: int = 100, *, sequence_number: Optional[int] = None
    ) -> List[AuditRecord]:
        op = "audit"
        if sequence_number is not None:
            data = await self._request(op, "GET", f"/sequence/audit/{int(sequence_number)}")
        else:
            if not 1 <= limit <= 1000:
                raise ValidationFailure(op, "limit must be between 1 and 1000")
            data = await self._request(op, "GET", "/sequence/audit", params={"limit": limit})
        try:
            return _AUDIT_ADAPTER.validate_python(data)
        except ValidationError as exc:
            raise ApplicationFailure(op, _describe_validation(exc)) from exc

    async def validate_integrity(self) -> IntegrityReport:
        data = await self._request("validate", "GET", "/sequence/validate")
        return self._parse("validate", IntegrityReport, data)
