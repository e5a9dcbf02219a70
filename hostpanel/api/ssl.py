from fastapi import APIRouter, Depends

from hostpanel.api.deps import get_orchestrator, unwrap
from hostpanel.models.certificate import CertificateRequest
from hostpanel.models.operation import OperationResult
from hostpanel.services.orchestrator import Orchestrator

router = APIRouter()


@router.post("/obtain", response_model=OperationResult, summary="Obtain a certificate")
def obtain_certificate(
    body: CertificateRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OperationResult:
    """
    Request a certificate via certbot (bounded by the certbot timeout) and
    reload nginx on success. An ACME failure is returned as HTTP 502.
    """
    return unwrap(orchestrator.obtain_certificate(body.domain, body.email))


@router.get("/certificates", response_model=OperationResult, summary="Known certificate records")
def list_certificates(orchestrator: Orchestrator = Depends(get_orchestrator)) -> OperationResult:
    return unwrap(orchestrator.list_certificates())
