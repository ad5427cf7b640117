"""Object graph for the engine - one place where every collaborator is built"""

from dataclasses import dataclass

from tanda_engine.config import Settings, settings as default_settings
from tanda_engine.infrastructure.clients.ledger import Ledger, LedgerClient
from tanda_engine.infrastructure.clients.notifications import InMemoryNotificationScheduler, NotificationScheduler
from tanda_engine.infrastructure.clients.wallet import FundsTransfer, UnconfiguredTransfer
from tanda_engine.infrastructure.clock import Clock, SystemClock
from tanda_engine.infrastructure.database.repositories import (
    FailedDepositRepository,
    ReputationRepository,
    TandaCacheRepository,
)
from tanda_engine.infrastructure.database.session import build_engine as build_db_engine
from tanda_engine.infrastructure.database.session import build_session_factory
from tanda_engine.infrastructure.database.store import PersistentStore, SqlAlchemyStore
from tanda_engine.services.deposits import DepositExecutor
from tanda_engine.services.orchestrator import TandaOrchestrator
from tanda_engine.services.registry import FailedDepositRegistry
from tanda_engine.services.reputation import ReputationService
from tanda_engine.services.retry_scheduler import RetryScheduler
from tanda_engine.services.strategies import DepositRetryStrategy, LedgerExpulsionStrategy
from tanda_engine.services.sync import TandaSyncService
from tanda_engine.services.tanda_cache import TandaCache


@dataclass
class Engine:
    orchestrator: TandaOrchestrator
    scheduler: RetryScheduler
    registry: FailedDepositRegistry
    reputation: ReputationService
    cache: TandaCache
    notifications: NotificationScheduler
    config: Settings


def build_engine(
    config: Settings | None = None,
    ledger: Ledger | None = None,
    store: PersistentStore | None = None,
    transfer: FundsTransfer | None = None,
    notifications: NotificationScheduler | None = None,
    clock: Clock | None = None,
) -> Engine:
    """
    Build the engine. Any collaborator can be replaced (tests, other
    front ends); the defaults talk to the configured Ledger and database.

    The registry is loaded here, so records left in retrying by a crash
    are back in pending_retry before the scheduler starts.
    """
    config = config or default_settings
    ledger = ledger or LedgerClient(config=config)
    store = store or SqlAlchemyStore(build_session_factory(build_db_engine(config.database_url)))
    transfer = transfer or UnconfiguredTransfer()
    notifications = notifications or InMemoryNotificationScheduler()
    clock = clock or SystemClock()

    cache = TandaCache(TandaCacheRepository(store))
    reputation = ReputationService(ReputationRepository(store))
    registry = FailedDepositRegistry(FailedDepositRepository(store), clock, config)
    registry.load()

    executor = DepositExecutor(ledger, transfer, cache, reputation, notifications)
    scheduler = RetryScheduler(
        registry,
        DepositRetryStrategy(executor, config.wallet_address),
        LedgerExpulsionStrategy(ledger, reputation, notifications, registry, cache, config.wallet_address),
        clock,
        config,
    )
    orchestrator = TandaOrchestrator(
        ledger=ledger,
        cache=cache,
        sync=TandaSyncService(ledger, cache),
        reputation=reputation,
        executor=executor,
        registry=registry,
        scheduler=scheduler,
        notifications=notifications,
        clock=clock,
        config=config,
    )

    return Engine(
        orchestrator=orchestrator,
        scheduler=scheduler,
        registry=registry,
        reputation=reputation,
        cache=cache,
        notifications=notifications,
        config=config,
    )
