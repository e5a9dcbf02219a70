from fastapi import APIRouter, Depends

from hostpanel.api.deps import get_orchestrator, unwrap
from hostpanel.models.operation import OperationResult
from hostpanel.models.site import SiteCreateRequest, SiteToggleRequest
from hostpanel.services.orchestrator import Orchestrator

router = APIRouter()

# Plain def endpoints: they shell out to nginx/certbot and run in the threadpool.


@router.get("", response_model=OperationResult, summary="List hosted sites")
def list_sites(orchestrator: Orchestrator = Depends(get_orchestrator)) -> OperationResult:
    return unwrap(orchestrator.list_sites())


@router.post("", response_model=OperationResult, summary="Create a hosted site")
def create_site(
    body: SiteCreateRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OperationResult:
    """
    Render, validate and enable a new nginx virtual host. A config rejected by
    nginx leaves nothing behind (HTTP 502); a duplicate domain returns 409.
    """
    return unwrap(
        orchestrator.create_site(
            domain=body.domain,
            directory=body.directory,
            php=body.php,
            ssl=body.ssl,
        )
    )


@router.post("/{name}/toggle", response_model=OperationResult, summary="Enable or disable a site")
def toggle_site(
    name: str,
    body: SiteToggleRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OperationResult:
    return unwrap(orchestrator.toggle_site(name, body.enabled))


@router.delete("/{name}", response_model=OperationResult, summary="Delete a site")
def delete_site(name: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> OperationResult:
    return unwrap(orchestrator.delete_site(name))
