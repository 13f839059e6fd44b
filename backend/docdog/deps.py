"""FastAPI dependencies resolving the caller's principal, ledger and orchestrator."""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from docdog.services.documents.ledger import HistoryLedger
from docdog.services.documents.orchestrator import UploadOrchestrator
from docdog.services.identity import validate_principal
from docdog.services.registry import DocumentServices


def get_services(request: Request) -> DocumentServices:
    return request.app.state.documents


def get_principal(
    x_docdog_user: Optional[str] = Header(None),
    services: DocumentServices = Depends(get_services),
) -> str:
    """Principal from the X-DocDog-User header, else the configured identity."""
    if x_docdog_user is None:
        return services.identity.principal_id()
    try:
        return validate_principal(x_docdog_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def get_ledger(
    principal: str = Depends(get_principal),
    services: DocumentServices = Depends(get_services),
) -> HistoryLedger:
    return await services.open_ledger(principal)


async def get_orchestrator(
    ledger: HistoryLedger = Depends(get_ledger),
    principal: str = Depends(get_principal),
    services: DocumentServices = Depends(get_services),
) -> UploadOrchestrator:
    return services.orchestrator(ledger, principal)
