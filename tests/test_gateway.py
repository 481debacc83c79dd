import pytest

from fakes import StubService, unused_port
from gateway import (
    ApplicationFailure,
    SequenceServiceClient,
    TransportFailure,
    ValidationFailure,
)

NEXT_OK = {
    "success": True,
    "sequenceNumbers": [1042],
    "gapFilled": False,
    "nodeId": "node-a",
    "processingTimeMs": 3,
    "siteId": "S1",
    "partitionId": "P1",
    "invoiceType": "INV",
}


async def _client():
    stub = StubService()
    url = await stub.start()
    return stub, SequenceServiceClient(url, timeout=2.0)


@pytest.mark.asyncio
async def test_next_sequence_parses_payload_and_sends_query():
    stub, client = await _client()
    stub.reply("GET", "/api/v1/sequence/next", NEXT_OK)
    try:
        resp = await client.next_sequence("S1", "P1", "INV")
        assert resp.first_sequence == 1042
        assert resp.node_id == "node-a"
        assert stub.requests[0]["query"] == {
            "siteId": "S1",
            "partitionId": "P1",
            "invoiceType": "INV",
        }
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_success_false_is_application_failure():
    stub, client = await _client()
    stub.reply("GET", "/api/v1/sequence/next", {"success": False, "error": "Partition locked"})
    try:
        with pytest.raises(ApplicationFailure) as info:
            await client.next_sequence("S1", "P1", "INV")
        assert info.value.reason == "Partition locked"
        assert info.value.operation == "next-sequence"
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_non_2xx_is_transport_failure_with_status():
    stub, client = await _client()
    stub.reply("GET", "/api/v1/sequence/next", {"error": "overloaded"}, status=503)
    stub.reply("POST", "/api/v1/sequence/reset", "boom", status=500)
    try:
        with pytest.raises(TransportFailure) as info:
            await client.next_sequence("S1", "P1", "INV")
        assert info.value.status == 503
        assert info.value.reason == "overloaded"

        with pytest.raises(TransportFailure) as info:
            await client.reset()
        assert info.value.reason == "HTTP 500"
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_unreachable_service_is_transport_failure():
    client = SequenceServiceClient(f"http://127.0.0.1:{unused_port()}", timeout=2.0)
    try:
        with pytest.raises(TransportFailure) as info:
            await client.health()
        assert info.value.kind == "transport"
        assert info.value.reason
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_missing_identifier_is_rejected_before_dispatch():
    stub, client = await _client()
    try:
        with pytest.raises(ValidationFailure):
            await client.next_sequence("S1", "  ", "INV")
        with pytest.raises(ValidationFailure):
            await client.release("12", "S1", "P1")
        assert stub.requests == []
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_malformed_body_is_application_failure():
    stub, client = await _client()
    stub.reply("GET", "/api/v1/sequence/next", {"success": True, "sequenceNumbers": []})
    stub.reply("GET", "/api/v1/sequence/health", "<html>not json</html>")
    try:
        with pytest.raises(ApplicationFailure) as info:
            await client.next_sequence("S1", "P1", "INV")
        assert "sequenceNumbers" in info.value.reason

        with pytest.raises(ApplicationFailure):
            await client.health()
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_release_sends_camel_case_body():
    stub, client = await _client()
    stub.reply(
        "POST",
        "/api/v1/sequence/release",
        {"success": True, "sequenceNumber": 1042, "message": "released"},
    )
    try:
        resp = await client.release(1042, "S1", "P1")
        assert resp.sequence_number == 1042
        assert stub.requests[0]["body"] == {
            "sequenceNumber": 1042,
            "siteId": "S1",
            "partitionId": "P1",
            "reason": "manual-release",
        }
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_stats_and_health_decode():
    stub, client = await _client()
    stub.reply(
        "GET",
        "/api/v1/sequence/stats",
        {
            "currentCounter": 50,
            "totalGenerated": 48,
            "availableGaps": 2,
            "averageLatencyMs": 1.5,
            "sequencesBySitePartition": {"S1-P1": 48},
        },
    )
    stub.reply("GET", "/api/v1/sequence/health", {"healthy": False, "currentCounter": 50})
    try:
        stats = await client.stats()
        assert stats.available_gaps == 2
        assert stats.sequences_by_site_partition == {"S1-P1": 48}
        health = await client.health()
        assert health.healthy is False
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_demo_accepts_plain_and_structured_steps():
    stub, client = await _client()
    stub.reply(
        "POST",
        "/api/v1/demo/gaps",
        {
            "name": "Gap Demo",
            "success": False,
            "steps": [
                "released 3",
                "FAILED to reuse 3",
                {"text": "checked", "outcome": "error"},
            ],
            "summary": "1 issue",
        },
    )
    try:
        result = await client.run_demo("gaps", {"count": 5})
        assert result.success is False
        assert [s.is_error for s in result.steps] == [False, True, True]
        assert stub.requests[0]["query"] == {"count": "5"}
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_gaps_and_audit():
    stub, client = await _client()
    stub.reply("GET", "/api/v1/sequence/gaps", {"success": True, "gaps": [3, 7], "count": 2})
    stub.reply(
        "GET",
        "/api/v1/sequence/audit",
        [{"sequenceNumber": 3, "operationType": "RELEASE"}],
    )
    try:
        gaps = await client.gaps()
        assert gaps.gaps == [3, 7]
        records = await client.audit(limit=10)
        assert records[0].operation_type == "RELEASE"
        assert stub.requests[-1]["query"] == {"limit": "10"}
        with pytest.raises(ValidationFailure):
            await client.audit(limit=0)
    finally:
        await client.close()
        await stub.stop()


@pytest.mark.asyncio
async def test_validate_integrity_report():
    stub, client = await _client()
    stub.reply(
        "GET",
        "/api/v1/sequence/validate",
        {"valid": False, "gaps": [4], "duplicates": [], "summary": "1 gap"},
    )
    try:
        report = await client.validate_integrity()
        assert report.valid is False
        assert report.gaps == [4]
        assert report.summary == "1 gap"
    finally:
        await client.close()
        await stub.stop()
