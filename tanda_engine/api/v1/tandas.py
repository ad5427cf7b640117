"""/v1/tandas - tanda membership, cycle advancement and payment schedule"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from tanda_engine.api.dependencies import get_orchestrator, get_request_id
from tanda_engine.api.errors import to_http_error
from tanda_engine.api.v1.schemas import (
    AdvanceResponse,
    CreateTandaRequest,
    NextPaymentResponse,
    PaymentScheduleItemSchema,
    PaymentScheduleResponse,
    TandaListResponse,
    TandaResponse,
)
from tanda_engine.domain.exceptions import DomainException, TandaNotFoundError
from tanda_engine.services.orchestrator import ADVANCE_ACTIONS, TandaOrchestrator

router = APIRouter()


@router.get("/tandas", response_model=TandaListResponse)
async def list_tandas(orchestrator: TandaOrchestrator = Depends(get_orchestrator)):
    """
    Cached tandas, returned immediately.

    A background sync with the Ledger is started; its result shows up on
    the next call.
    """
    tandas = await orchestrator.load_tandas()
    return TandaListResponse(tandas=[TandaResponse.from_domain(t) for t in tandas])


@router.post("/tandas", response_model=TandaResponse, status_code=201)
async def create_tanda(
    request_body: CreateTandaRequest,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    try:
        tanda = await orchestrator.create_tanda(
            amount=request_body.amount,
            max_participants=request_body.max_participants,
            name=request_body.name,
        )
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return TandaResponse.from_domain(tanda)


@router.get("/tandas/{tanda_id}", response_model=TandaResponse)
async def get_tanda(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    """Cached copy, falling back to the Ledger for tandas not seen yet"""
    try:
        tanda = orchestrator.get_tanda(tanda_id)
    except TandaNotFoundError:
        try:
            tanda = await orchestrator.refresh_tanda(tanda_id)
        except DomainException as e:
            raise to_http_error(e, get_request_id(request))
        if tanda is None:
            raise to_http_error(TandaNotFoundError(f"Tanda {tanda_id} not found"), get_request_id(request))
    return TandaResponse.from_domain(tanda)


@router.post("/tandas/{tanda_id}/refresh", response_model=TandaResponse)
async def refresh_tanda(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    try:
        tanda = await orchestrator.refresh_tanda(tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    if tanda is None:
        raise to_http_error(TandaNotFoundError(f"Tanda {tanda_id} not found"), get_request_id(request))
    return TandaResponse.from_domain(tanda)


@router.post("/tandas/{tanda_id}/join", response_model=TandaResponse)
async def join_tanda(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    try:
        tanda = await orchestrator.join_tanda(tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return TandaResponse.from_domain(tanda)


@router.post("/tandas/{tanda_id}/leave", response_model=Optional[TandaResponse])
async def leave_tanda(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    try:
        tanda = await orchestrator.leave_tanda(tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return TandaResponse.from_domain(tanda) if tanda else None


@router.post("/tandas/{tanda_id}/advance", response_model=AdvanceResponse)
async def advance_tanda(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    """
    Evaluate the current cycle and forward the advance to the Ledger
    when a payout or an expulsion is due.
    """
    try:
        decision, tanda = await orchestrator.advance(tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return AdvanceResponse(
        decision=decision.value,
        forwarded=decision in ADVANCE_ACTIONS,
        tanda=TandaResponse.from_domain(tanda),
    )


@router.get("/tandas/{tanda_id}/schedule", response_model=PaymentScheduleResponse)
def get_payment_schedule(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    try:
        items = orchestrator.get_payment_schedule(tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return PaymentScheduleResponse(
        tanda_id=tanda_id,
        items=[PaymentScheduleItemSchema.model_validate(item) for item in items],
    )


@router.get("/tandas/{tanda_id}/next-payment", response_model=Optional[NextPaymentResponse])
def get_next_payment(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    """Null when nothing is owed (already paid, not a member, tanda not running)"""
    try:
        payment = orchestrator.get_next_payment(tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return NextPaymentResponse.model_validate(payment) if payment else None


@router.post("/tandas/{tanda_id}/reminders")
async def schedule_reminders(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    try:
        scheduled = await orchestrator.schedule_payment_reminders(tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return {"tanda_id": tanda_id, "scheduled": scheduled}
