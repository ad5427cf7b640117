"""/v1/tandas/{tanda_id}/deposit - contributions and failed-deposit retries"""

from fastapi import APIRouter, Depends, HTTPException, Request

from tanda_engine.api.dependencies import get_orchestrator, get_request_id
from tanda_engine.api.errors import to_http_error
from tanda_engine.api.v1.schemas import RetryInfoResponse, RetryResultResponse, TandaResponse
from tanda_engine.domain.exceptions import DepositFailedError, DomainException
from tanda_engine.services.orchestrator import TandaOrchestrator

router = APIRouter()


def _retry_info(orchestrator: TandaOrchestrator, tanda_id: str) -> RetryInfoResponse | None:
    info = orchestrator.get_failed_deposit_info(tanda_id)
    return RetryInfoResponse.model_validate(info) if info else None


@router.post("/tandas/{tanda_id}/deposit", response_model=TandaResponse)
async def deposit(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    """
    Contribute to the current cycle.

    A failed contribution is scheduled for automatic retry; the 402
    response carries the retry status so the client can show it.
    """
    request_id = get_request_id(request)
    try:
        tanda = await orchestrator.deposit(tanda_id)
    except DepositFailedError as e:
        info = _retry_info(orchestrator, tanda_id)
        raise to_http_error(
            e,
            request_id,
            detail={"message": str(e), "retry_info": info.model_dump(mode="json") if info else None},
        )
    except DomainException as e:
        raise to_http_error(e, request_id)
    return TandaResponse.from_domain(tanda)


@router.post("/tandas/{tanda_id}/retry", response_model=RetryResultResponse)
async def retry_deposit(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    """Retry this cycle's failed contribution now instead of waiting for the scheduler"""
    try:
        resolved = await orchestrator.retry_failed_deposit(tanda_id)
        info = _retry_info(orchestrator, tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    return RetryResultResponse(resolved=resolved, retry_info=info)


@router.get("/tandas/{tanda_id}/retry", response_model=RetryInfoResponse)
def get_retry_info(
    tanda_id: str,
    request: Request,
    orchestrator: TandaOrchestrator = Depends(get_orchestrator),
):
    try:
        info = _retry_info(orchestrator, tanda_id)
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    if info is None:
        raise HTTPException(status_code=404, detail="No failed deposit for the current cycle")
    return info
