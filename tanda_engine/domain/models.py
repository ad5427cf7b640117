"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, NamedTuple, Optional

LOCAL_ID_PREFIX = "local_"


class TandaStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"


class FailedDepositStatus(str, Enum):
    PENDING_RETRY = "pending_retry"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    FAILED_PERMANENT = "failed_permanent"
    USER_EXPELLED = "user_expelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        FailedDepositStatus.RESOLVED,
        FailedDepositStatus.FAILED_PERMANENT,
        FailedDepositStatus.USER_EXPELLED,
    }
)


class AdvanceDecision(str, Enum):
    """Outcome of evaluating a cycle against the Ledger-reported state"""

    NO_ACTION = "no_action"
    PAYOUT_READY = "payout_ready"
    DELINQUENTS_PRESENT = "delinquents_present"


@dataclass
class Participant:
    """Member of a tanda as reported by the Ledger"""

    wallet_address: str
    joined_at: datetime
    has_deposited: bool = False
    has_withdrawn: bool = False
    score: int = 50  # Display-only snapshot taken at join time


@dataclass
class Tanda:
    """Rotating savings group (cached copy of Ledger state)"""

    id: str
    name: str
    creator: str
    amount: Decimal
    max_participants: int
    participants: List[Participant]
    current_cycle: int
    total_cycles: int
    status: TandaStatus
    created_at: datetime
    last_payout_at: Optional[datetime] = None
    beneficiary_order: List[int] = field(default_factory=list)
    storage_account: Optional[str] = None

    def __post_init__(self) -> None:
        if self.last_payout_at is None:
            self.last_payout_at = self.created_at

    @property
    def is_provisional(self) -> bool:
        """True while the tanda only exists locally (created offline)"""
        return self.id.startswith(LOCAL_ID_PREFIX)

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= self.max_participants

    def find_participant(self, wallet_address: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.wallet_address == wallet_address:
                return participant
        return None

    def beneficiary_for_cycle(self, cycle: int) -> Optional[str]:
        """Wallet receiving the payout for a 1-based cycle, if known"""
        if cycle < 1 or cycle > len(self.beneficiary_order):
            return None
        index = self.beneficiary_order[cycle - 1]
        if 0 <= index < len(self.participants):
            return self.participants[index].wallet_address
        return None


class DepositKey(NamedTuple):
    """Identity of a contribution: one per (tanda, wallet, cycle)"""

    tanda_id: str
    wallet_address: str
    cycle: int

    def __str__(self) -> str:
        return f"{self.tanda_id}_{self.wallet_address}_{self.cycle}"


@dataclass
class FailedDepositRecord:
    """Retry bookkeeping for a contribution that could not be made"""

    tanda_id: str
    wallet_address: str
    cycle: int
    amount: Decimal
    first_failed_at: datetime
    last_attempt_at: datetime
    next_retry_at: datetime
    attempt_count: int = 1
    error_message: str = ""
    status: FailedDepositStatus = FailedDepositStatus.PENDING_RETRY
    expulsion_attempted: bool = False

    @property
    def key(self) -> DepositKey:
        return DepositKey(self.tanda_id, self.wallet_address, self.cycle)


@dataclass
class UserReputation:
    """Reputation of a wallet; only changed through scoring events"""

    wallet_address: str
    score: int = 50
    total_tandas: int = 0
    completed_tandas: int = 0
    active_debt: bool = False


@dataclass
class PaymentScheduleItem:
    """One payout slot in a tanda's rotation"""

    cycle: int
    beneficiary: Optional[str]
    status: str  # "completed" | "pending" | "upcoming"
    due_at: Optional[datetime] = None


@dataclass
class NextPaymentInfo:
    """Contribution the current wallet still owes for the running cycle"""

    cycle: int
    due_at: datetime
    amount: Decimal
    beneficiary: Optional[str]
    days_remaining: int
    is_overdue: bool


@dataclass
class RetryInfo:
    """User-facing view of a failed deposit"""

    status: FailedDepositStatus
    attempt_count: int
    max_attempts: int
    next_retry_at: Optional[datetime]
    days_remaining: int
    error_message: str
    score_penalty: int = 0


@dataclass
class RetryStats:
    total: int
    pending: int
    resolved: int
    failed: int
    expelled: int
