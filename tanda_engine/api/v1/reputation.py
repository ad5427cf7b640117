"""/v1/reputation and /v1/retries - wallet reputation and retry bookkeeping"""

from fastapi import APIRouter, Depends, Request

from tanda_engine.api.dependencies import get_orchestrator, get_request_id
from tanda_engine.api.errors import to_http_error
from tanda_engine.api.v1.schemas import ReputationResponse, RetryStatsResponse
from tanda_engine.domain.exceptions import DomainException
from tanda_engine.domain.scoring import is_blocked
from tanda_engine.services.orchestrator import TandaOrchestrator

router = APIRouter()


@router.get("/reputation", response_model=ReputationResponse)
def get_reputation(request: Request, orchestrator: TandaOrchestrator = Depends(get_orchestrator)):
    try:
        reputation = orchestrator.get_reputation()
    except DomainException as e:
        raise to_http_error(e, get_request_id(request))
    response = ReputationResponse.model_validate(reputation)
    response.blocked = is_blocked(reputation.score)
    return response


@router.get("/retries/stats", response_model=RetryStatsResponse)
def get_retry_stats(orchestrator: TandaOrchestrator = Depends(get_orchestrator)):
    return RetryStatsResponse.model_validate(orchestrator.get_retry_stats())
