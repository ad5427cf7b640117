"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tanda_engine.domain.models import FailedDepositStatus, Tanda, TandaStatus


class CreateTandaRequest(BaseModel):
    """Request body for POST /v1/tandas"""

    name: str = Field("", max_length=100, description="Display name")
    amount: Decimal = Field(..., gt=0, description="Contribution per cycle")
    max_participants: int = Field(..., ge=2, le=50, description="Group size; also the number of cycles")


class ParticipantSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    wallet_address: str
    joined_at: datetime
    has_deposited: bool
    has_withdrawn: bool
    score: int


class TandaResponse(BaseModel):
    """A tanda as cached on this device"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    creator: str
    amount: Decimal
    max_participants: int
    participants: List[ParticipantSchema]
    current_cycle: int
    total_cycles: int
    status: TandaStatus
    created_at: datetime
    last_payout_at: Optional[datetime] = None
    beneficiary_order: List[int] = []
    storage_account: Optional[str] = None
    provisional: bool = False

    @classmethod
    def from_domain(cls, tanda: Tanda) -> "TandaResponse":
        response = cls.model_validate(tanda)
        response.provisional = tanda.is_provisional
        return response


class TandaListResponse(BaseModel):
    tandas: List[TandaResponse]


class AdvanceResponse(BaseModel):
    """Response for POST /v1/tandas/{tanda_id}/advance"""

    decision: str
    forwarded: bool
    tanda: TandaResponse


class RetryInfoResponse(BaseModel):
    """Status of a failed contribution, e.g. attempt 3/7 with 4 days left"""

    model_config = ConfigDict(from_attributes=True)

    status: FailedDepositStatus
    attempt_count: int
    max_attempts: int
    next_retry_at: Optional[datetime] = None
    days_remaining: int
    error_message: str
    score_penalty: int = 0


class RetryResultResponse(BaseModel):
    resolved: bool
    retry_info: Optional[RetryInfoResponse] = None


class RetryStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    pending: int
    resolved: int
    failed: int
    expelled: int


class PaymentScheduleItemSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cycle: int
    beneficiary: Optional[str] = None
    status: str
    due_at: Optional[datetime] = None


class PaymentScheduleResponse(BaseModel):
    tanda_id: str
    items: List[PaymentScheduleItemSchema]


class NextPaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cycle: int
    due_at: datetime
    amount: Decimal
    beneficiary: Optional[str] = None
    days_remaining: int
    is_overdue: bool


class ReputationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    wallet_address: str
    score: int
    total_tandas: int
    completed_tandas: int
    active_debt: bool
    blocked: bool = False
