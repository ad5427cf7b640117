"""Unit tests for the Ledger HTTP client"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from tanda_engine.config import Settings
from tanda_engine.domain.exceptions import LedgerError, TandaNotFoundError
from tanda_engine.domain.models import TandaStatus
from tanda_engine.infrastructure.clients.ledger import LedgerClient, parse_tanda

MARCH_1_NOON_MS = 1709294400000


def tanda_payload(**overrides):
    payload = {
        "id": "t1",
        "name": "Family",
        "creator": "GA",
        "amount": 100.5,
        "maxParticipants": 3,
        "participants": [
            {"walletAddress": "GA", "joinedAt": MARCH_1_NOON_MS, "hasDeposited": True},
            {"walletAddress": "GB", "joinedAt": MARCH_1_NOON_MS},
        ],
        "currentCycle": 1,
        "totalCycles": 3,
        "status": "active",
        "createdAt": MARCH_1_NOON_MS,
        "lastPayoutAt": None,
        "beneficiaryOrder": ["GB", "GA", "GGONE"],
        "storageAccount": "GCUSTODY",
    }
    payload.update(overrides)
    return payload


def make_client(handler) -> LedgerClient:
    config = Settings(ledger_retry_delay_seconds=0, _env_file=None)
    return LedgerClient(base_url="http://ledger.test", config=config, transport=httpx.MockTransport(handler))


def test_parse_tanda():
    """Test facade JSON to Tanda conversion"""
    tanda = parse_tanda(tanda_payload())

    assert tanda.amount == Decimal("100.5")
    assert tanda.status == TandaStatus.ACTIVE
    assert tanda.created_at == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert tanda.last_payout_at == tanda.created_at
    assert tanda.participants[0].has_deposited is True
    assert tanda.participants[1].has_deposited is False
    # Addresses become indices; unknown addresses are dropped
    assert tanda.beneficiary_order == [1, 0]
    assert tanda.beneficiary_for_cycle(1) == "GB"
    assert tanda.storage_account == "GCUSTODY"


def test_parse_cancelled_tanda_is_completed():
    """Test cancelled tandas map to completed"""
    assert parse_tanda(tanda_payload(status="cancelled")).status == TandaStatus.COMPLETED


async def test_create_tanda_sends_facade_payload():
    """Test POST /tanda/create payload"""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "tanda": tanda_payload()})

    tanda = await make_client(handler).create_tanda("Family", Decimal("100.5"), 3, "GA")

    assert tanda.id == "t1"
    assert seen["path"] == "/api/tanda/create"
    assert seen["body"] == {
        "name": "Family",
        "amount": 100.5,
        "maxParticipants": 3,
        "totalCycles": 3,
        "creatorWallet": "GA",
    }


async def test_server_errors_are_retried():
    """Test 5xx responses are retried"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, json={"success": False, "error": "busy"})
        return httpx.Response(200, json={"success": True, "tanda": tanda_payload()})

    tanda = await make_client(handler).get_tanda("t1")

    assert tanda.id == "t1"
    assert len(calls) == 2


async def test_gives_up_after_max_retries():
    """Test LedgerError after the last retry"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(LedgerError):
        await make_client(handler).get_tandas()

    assert len(calls) == 3


async def test_client_errors_fail_fast_with_facade_message():
    """Test 4xx responses are not retried"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"success": False, "error": "Tanda is full", "code": "TANDA_FULL"})

    with pytest.raises(LedgerError) as exc_info:
        await make_client(handler).join_tanda("t1", "GC")

    assert str(exc_info.value) == "Tanda is full"
    assert exc_info.value.code == "TANDA_FULL"
    assert exc_info.value.status_code == 400
    assert len(calls) == 1


async def test_unsuccessful_body_is_an_error():
    """Test success=false bodies raise LedgerError"""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "error": "Deposit not found on chain"})

    with pytest.raises(LedgerError, match="Deposit not found on chain"):
        await make_client(handler).confirm_deposit("t1", "GA", "tx-1")


async def test_unknown_tanda_raises_not_found():
    """Test 404 maps to TandaNotFoundError"""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"success": False, "error": "Not found", "code": "NOT_FOUND"})

    with pytest.raises(TandaNotFoundError):
        await make_client(handler).get_tanda("missing")


async def test_get_tandas_with_status_filter():
    """Test GET /tanda/list status filter"""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["status"] = request.url.params.get("status")
        return httpx.Response(200, json={"success": True, "tandas": [tanda_payload(), tanda_payload(id="t2")]})

    tandas = await make_client(handler).get_tandas(status=TandaStatus.ACTIVE)

    assert seen["status"] == "active"
    assert [t.id for t in tandas] == ["t1", "t2"]


async def test_invalid_json_is_a_ledger_error():
    """Test unparseable responses raise LedgerError"""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>gateway</html>")

    with pytest.raises(LedgerError, match="Invalid response"):
        await make_client(handler).advance("t1")


async def test_missing_tanda_in_response_is_a_ledger_error():
    """Test responses without a tanda raise LedgerError"""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True})

    with pytest.raises(LedgerError):
        await make_client(handler).leave_tanda("t1", "GA")
