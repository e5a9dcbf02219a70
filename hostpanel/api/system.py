from fastapi import APIRouter, Depends

from hostpanel.api.deps import get_orchestrator, unwrap
from hostpanel.models.operation import OperationResult
from hostpanel.services.orchestrator import Orchestrator

router = APIRouter()


@router.get("/stats", response_model=OperationResult, summary="Aggregated system stats")
def system_stats(orchestrator: Orchestrator = Depends(get_orchestrator)) -> OperationResult:
    """
    Return the latest CPU/memory samples and their history, real root disk
    usage, service liveness and site/certificate/database counters.
    """
    return unwrap(orchestrator.get_stats())


@router.get("/jobs", response_model=OperationResult, summary="Scheduled jobs")
def scheduled_jobs(orchestrator: Orchestrator = Depends(get_orchestrator)) -> OperationResult:
    return unwrap(orchestrator.list_jobs())
