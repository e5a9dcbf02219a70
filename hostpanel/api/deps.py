from fastapi import HTTPException, Request

from hostpanel.models.operation import OperationResult
from hostpanel.services.orchestrator import Orchestrator

_STATUS_BY_ERROR = {
    "ValidationError": 400,
    "AccessDeniedError": 403,
    "NotFoundError": 404,
    "ConflictError": 409,
    "ExternalCommandError": 502,
}


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.panel.orchestrator


def unwrap(result: OperationResult) -> OperationResult:
    """
    Return successful results unchanged and turn failed ones into an
    HTTPException with a status code derived from the error type.
    """
    if result.success:
        return result
    raise HTTPException(
        status_code=_STATUS_BY_ERROR.get(result.error_type or "", 500),
        detail=result.error,
    )
