from typing import Optional

from fastapi import APIRouter, Depends, Query

from hostpanel.api.deps import get_orchestrator, unwrap
from hostpanel.models.operation import OperationResult
from hostpanel.services.orchestrator import Orchestrator

router = APIRouter()


@router.get("", response_model=OperationResult, summary="List a directory")
def list_files(
    path: Optional[str] = Query(None, description="Absolute directory path, defaults to the web root"),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OperationResult:
    """
    Only the web root and the nginx sites-available / sites-enabled
    directories (and anything below them) can be listed; other paths get 403.
    """
    return unwrap(orchestrator.list_files(path))
