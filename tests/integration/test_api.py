"""Integration tests for API endpoints"""

from datetime import timedelta
from decimal import Decimal

from fastapi.testclient import TestClient

from conftest import OTHER_WALLET, START, THIRD_WALLET, WALLET, make_tanda
from tanda_engine.domain.models import TandaStatus, UserReputation
from tanda_engine.infrastructure.database.repositories import ReputationRepository


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["scheduler_running"] is False


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "tanda_failed_deposit_total" in response.text


def test_request_id_is_propagated(client: TestClient):
    """Test X-Request-ID propagation"""
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

    generated = client.get("/health")
    assert generated.headers["X-Request-ID"]


def test_create_and_list_tandas(client: TestClient):
    """Test POST /v1/tandas then GET /v1/tandas"""
    response = client.post("/v1/tandas", json={"name": "Family", "amount": "100", "max_participants": 4})

    assert response.status_code == 201
    data = response.json()
    assert data["id"] == "remote-1"
    assert data["status"] == "waiting"
    assert data["provisional"] is False
    assert Decimal(data["amount"]) == Decimal("100")

    listed = client.get("/v1/tandas").json()["tandas"]
    assert [t["id"] for t in listed] == ["remote-1"]


def test_create_tanda_offline_is_provisional(client: TestClient, ledger):
    """Test POST /v1/tandas with the Ledger down"""
    ledger.available = False

    response = client.post("/v1/tandas", json={"amount": "25", "max_participants": 3})

    assert response.status_code == 201
    assert response.json()["id"].startswith("local_")
    assert response.json()["provisional"] is True


def test_create_tanda_validation(client: TestClient):
    """Test request validation on POST /v1/tandas"""
    response = client.post("/v1/tandas", json={"amount": "0", "max_participants": 1})
    assert response.status_code == 422


def test_blocked_user_is_forbidden(client: TestClient, store):
    """Test 403 for blocked users"""
    ReputationRepository(store).save(UserReputation(wallet_address=WALLET, score=10))

    response = client.post("/v1/tandas", json={"amount": "100", "max_participants": 3})

    assert response.status_code == 403


def test_get_tanda_falls_back_to_ledger(client: TestClient, ledger):
    """Test GET /v1/tandas/{id} for an uncached tanda"""
    ledger.add(make_tanda())

    response = client.get("/v1/tandas/tanda-1")

    assert response.status_code == 200
    assert len(response.json()["participants"]) == 3


def test_get_unknown_tanda(client: TestClient):
    """Test GET /v1/tandas/{id} with an unknown ID"""
    response = client.get("/v1/tandas/missing")
    assert response.status_code == 404


def test_join_full_tanda_conflicts(client: TestClient, ledger):
    """Test 409 when joining a full tanda"""
    ledger.add(make_tanda(wallets=[OTHER_WALLET, THIRD_WALLET], status=TandaStatus.WAITING, max_participants=2))

    response = client.post("/v1/tandas/tanda-1/join")

    assert response.status_code == 409


def test_join_and_leave(client: TestClient, ledger):
    """Test POST /v1/tandas/{id}/join and /leave"""
    ledger.add(make_tanda(wallets=[OTHER_WALLET], status=TandaStatus.WAITING, current_cycle=0, max_participants=3))

    joined = client.post("/v1/tandas/tanda-1/join")
    assert joined.status_code == 200
    assert WALLET in [p["wallet_address"] for p in joined.json()["participants"]]

    left = client.post("/v1/tandas/tanda-1/leave")
    assert left.status_code == 200
    assert WALLET not in [p["wallet_address"] for p in left.json()["participants"]]


def test_deposit_success(client: TestClient, ledger):
    """Test POST /v1/tandas/{id}/deposit"""
    ledger.add(make_tanda())

    response = client.post("/v1/tandas/tanda-1/deposit")

    assert response.status_code == 200
    me = next(p for p in response.json()["participants"] if p["wallet_address"] == WALLET)
    assert me["has_deposited"] is True
    assert client.get("/v1/reputation").json()["score"] == 55


def test_failed_deposit_reports_retry_status(client: TestClient, ledger, transfer):
    """A failed deposit returns 402 and can be retried manually"""
    ledger.add(make_tanda())
    transfer.failures = 1

    response = client.post("/v1/tandas/tanda-1/deposit")

    assert response.status_code == 402
    detail = response.json()["detail"]
    assert detail["message"] == "Insufficient balance"
    assert detail["retry_info"]["attempt_count"] == 1
    assert detail["retry_info"]["max_attempts"] == 7
    assert detail["retry_info"]["status"] == "pending_retry"

    info = client.get("/v1/tandas/tanda-1/retry")
    assert info.status_code == 200
    assert info.json()["days_remaining"] == 6

    retried = client.post("/v1/tandas/tanda-1/retry")
    assert retried.status_code == 200
    assert retried.json() == {"resolved": True, "retry_info": None}

    assert client.get("/v1/tandas/tanda-1/retry").status_code == 404
    stats = client.get("/v1/retries/stats").json()
    assert stats["total"] == 1
    assert stats["resolved"] == 1


def test_advance_payout(client: TestClient, ledger):
    """Test POST /v1/tandas/{id}/advance with a payout"""
    ledger.add(make_tanda(deposited=[WALLET, OTHER_WALLET, THIRD_WALLET], last_payout_at=START))

    response = client.post("/v1/tandas/tanda-1/advance")

    assert response.status_code == 200
    data = response.json()
    assert data["decision"] == "payout_ready"
    assert data["forwarded"] is True
    assert data["tanda"]["current_cycle"] == 2


def test_advance_with_ledger_down(client: TestClient, ledger):
    """Test 503 when the Ledger is down"""
    ledger.add(make_tanda())
    ledger.available = False

    response = client.post("/v1/tandas/tanda-1/advance")

    assert response.status_code == 503


def test_schedule_and_next_payment(client: TestClient, ledger, clock):
    """Test GET /v1/tandas/{id}/schedule and /next-payment"""
    ledger.add(make_tanda(current_cycle=2, last_payout_at=START))
    client.post("/v1/tandas/tanda-1/refresh")
    clock.advance(timedelta(days=2))

    schedule = client.get("/v1/tandas/tanda-1/schedule").json()
    payment = client.get("/v1/tandas/tanda-1/next-payment").json()

    assert [item["status"] for item in schedule["items"]] == ["completed", "pending", "upcoming"]
    assert payment["cycle"] == 2
    assert payment["beneficiary"] == OTHER_WALLET
    assert payment["days_remaining"] == 4
    assert payment["is_overdue"] is False


def test_next_payment_is_null_after_deposit(client: TestClient, ledger):
    """Test null next payment after the deposit"""
    ledger.add(make_tanda(deposited=[WALLET]))
    client.post("/v1/tandas/tanda-1/refresh")

    response = client.get("/v1/tandas/tanda-1/next-payment")

    assert response.status_code == 200
    assert response.json() is None


def test_schedule_reminders(client: TestClient, ledger, notifications):
    """Test POST /v1/tandas/{id}/reminders"""
    ledger.add(make_tanda(last_payout_at=START))
    client.post("/v1/tandas/tanda-1/refresh")

    response = client.post("/v1/tandas/tanda-1/reminders")

    assert response.json() == {"tanda_id": "tanda-1", "scheduled": 3}
    assert len(notifications.for_tanda("tanda-1")) == 3


def test_reputation(client: TestClient):
    """Test GET /v1/reputation"""
    data = client.get("/v1/reputation").json()

    assert data == {
        "wallet_address": WALLET,
        "score": 50,
        "total_tandas": 0,
        "completed_tandas": 0,
        "active_debt": False,
        "blocked": False,
    }
