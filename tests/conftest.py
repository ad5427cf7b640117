"""Pytest fixtures for testing"""

import asyncio
import copy
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from tanda_engine.api.main import create_app
from tanda_engine.config import Settings
from tanda_engine.container import Engine, build_engine
from tanda_engine.domain.exceptions import (
    InsufficientFundsError,
    LedgerError,
    TandaFullError,
    TandaNotFoundError,
)
from tanda_engine.domain.models import Participant, Tanda, TandaStatus
from tanda_engine.infrastructure.clients.notifications import InMemoryNotificationScheduler
from tanda_engine.infrastructure.database.store import InMemoryStore

WALLET = "GUSERWALLET"
OTHER_WALLET = "GOTHERWALLET"
THIRD_WALLET = "GTHIRDWALLET"
START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when the test advances it"""

    def __init__(self, start: datetime = START):
        self.current = start
        self._sleepers: List[tuple[datetime, asyncio.Future]] = []

    def now(self) -> datetime:
        return self.current

    async def after(self, duration: timedelta) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.current + duration, future))
        await future

    def advance(self, duration: timedelta) -> None:
        self.current += duration
        waiting = []
        for deadline, future in self._sleepers:
            if deadline <= self.current:
                if not future.done():
                    future.set_result(None)
            else:
                waiting.append((deadline, future))
        self._sleepers = waiting


async def settle(rounds: int = 50) -> None:
    """Let scheduled tasks run until they block again"""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_tanda(
    tanda_id: str = "tanda-1",
    wallets: Optional[List[str]] = None,
    deposited: Optional[List[str]] = None,
    status: TandaStatus = TandaStatus.ACTIVE,
    current_cycle: int = 1,
    last_payout_at: Optional[datetime] = None,
    max_participants: Optional[int] = None,
    amount: Decimal = Decimal("100"),
    created_at: datetime = START - timedelta(days=1),
) -> Tanda:
    wallets = [WALLET, OTHER_WALLET, THIRD_WALLET] if wallets is None else wallets
    deposited = deposited or []
    return Tanda(
        id=tanda_id,
        name=f"Tanda {tanda_id}",
        creator=wallets[0] if wallets else WALLET,
        amount=amount,
        max_participants=max_participants or max(len(wallets), 2),
        participants=[
            Participant(wallet_address=w, joined_at=created_at, has_deposited=w in deposited) for w in wallets
        ],
        current_cycle=current_cycle,
        total_cycles=max_participants or max(len(wallets), 2),
        status=status,
        created_at=created_at,
        last_payout_at=last_payout_at or created_at,
        beneficiary_order=list(range(len(wallets))),
        storage_account="GCUSTODY",
    )


class FakeLedger:
    """In-memory Ledger; set `available = False` to simulate an outage"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.tandas: Dict[str, Tanda] = {}
        self.available = True
        self.calls: List[str] = []
        self._next_id = 1

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if not self.available:
            raise LedgerError("Ledger unavailable")

    def add(self, tanda: Tanda) -> Tanda:
        self.tandas[tanda.id] = tanda
        return tanda

    def _get(self, tanda_id: str) -> Tanda:
        if tanda_id not in self.tandas:
            raise TandaNotFoundError(f"Tanda {tanda_id} not found")
        return self.tandas[tanda_id]

    async def create_tanda(self, name: str, amount: Decimal, max_participants: int, creator_wallet: str) -> Tanda:
        self._check("create_tanda")
        tanda = make_tanda(
            tanda_id=f"remote-{self._next_id}",
            wallets=[creator_wallet],
            status=TandaStatus.WAITING,
            current_cycle=0,
            max_participants=max_participants,
            amount=amount,
            created_at=self.clock.now(),
        )
        tanda.name = name
        self._next_id += 1
        return copy.deepcopy(self.add(tanda))

    async def join_tanda(self, tanda_id: str, wallet_address: str) -> Tanda:
        self._check("join_tanda")
        tanda = self._get(tanda_id)
        if tanda.is_full:
            raise TandaFullError("Tanda is full")
        tanda.participants.append(Participant(wallet_address=wallet_address, joined_at=self.clock.now()))
        tanda.beneficiary_order.append(len(tanda.participants) - 1)
        if tanda.is_full:
            tanda.status = TandaStatus.ACTIVE
            tanda.current_cycle = 1
            tanda.last_payout_at = self.clock.now()
        return copy.deepcopy(tanda)

    async def get_tanda(self, tanda_id: str) -> Tanda:
        self._check("get_tanda")
        return copy.deepcopy(self._get(tanda_id))

    async def get_tandas(self, status: Optional[TandaStatus] = None) -> List[Tanda]:
        self._check("get_tandas")
        return [copy.deepcopy(t) for t in self.tandas.values() if status is None or t.status == status]

    async def confirm_deposit(self, tanda_id: str, wallet_address: str, proof: str) -> Tanda:
        self._check("confirm_deposit")
        tanda = self._get(tanda_id)
        tanda.participants = [
            replace(p, has_deposited=True) if p.wallet_address == wallet_address else p for p in tanda.participants
        ]
        return copy.deepcopy(tanda)

    async def advance(self, tanda_id: str) -> Tanda:
        self._check("advance")
        tanda = self._get(tanda_id)
        if all(p.has_deposited for p in tanda.participants):
            if tanda.current_cycle >= tanda.total_cycles:
                tanda.status = TandaStatus.COMPLETED
            else:
                tanda.current_cycle += 1
            tanda.participants = [replace(p, has_deposited=False) for p in tanda.participants]
        else:
            tanda.participants = [p for p in tanda.participants if p.has_deposited]
        tanda.last_payout_at = self.clock.now()
        return copy.deepcopy(tanda)

    async def leave_tanda(self, tanda_id: str, wallet_address: str) -> Tanda:
        self._check("leave_tanda")
        tanda = self._get(tanda_id)
        tanda.participants = [p for p in tanda.participants if p.wallet_address != wallet_address]
        return copy.deepcopy(tanda)


class FakeTransfer:
    """Transfer backend failing the next `failures` calls"""

    def __init__(self, failures: int = 0, error: Exception | None = None):
        self.failures = failures
        self.error = error or InsufficientFundsError("Insufficient balance")
        self.calls = 0

    async def transfer(self, tanda: Tanda, amount: Decimal) -> str:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        return f"tx-{self.calls}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> Settings:
    return Settings(
        wallet_address=WALLET,
        database_url="sqlite://",
        ledger_retry_delay_seconds=0,
        retry_attempt_timeout_seconds=0.2,
        scheduler_enabled=False,
        _env_file=None,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def ledger(clock: FakeClock) -> FakeLedger:
    return FakeLedger(clock)


@pytest.fixture
def transfer() -> FakeTransfer:
    return FakeTransfer()


@pytest.fixture
def notifications() -> InMemoryNotificationScheduler:
    return InMemoryNotificationScheduler()


@pytest.fixture
def engine(config, ledger, store, transfer, notifications, clock) -> Engine:
    return build_engine(
        config=config,
        ledger=ledger,
        store=store,
        transfer=transfer,
        notifications=notifications,
        clock=clock,
    )


@pytest.fixture
def client(engine: Engine):
    """FastAPI test client running the app lifespan against the test engine"""
    app = create_app(engine_factory=lambda: engine)
    with TestClient(app) as test_client:
        yield test_client
