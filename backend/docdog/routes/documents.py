"""Documents API routes."""
from fastapi import APIRouter, Depends, Form, HTTPException, UploadFile, File as FastAPIFile

from docdog.deps import get_orchestrator, get_services
from docdog.routes.history import to_response
from docdog.schemas.document import ExpireOptionResponse, UploadResponse
from docdog.services.documents.expiry import ExpireOption, available_options, now_ms
from docdog.services.documents.orchestrator import UploadOrchestrator
from docdog.services.registry import DocumentServices

router = APIRouter(prefix="/api/documents", tags=["documents"])


@router.get("/expire-options", response_model=list[ExpireOptionResponse])
async def list_expire_options(services: DocumentServices = Depends(get_services)):
    """Retention windows offered by this deployment."""
    return [
        {
            "value": option,
            "label": option.label,
            "duration_seconds": int(option.duration.total_seconds()),
            "permanent": option.is_permanent,
        }
        for option in available_options(services.settings.ALLOW_PERMANENT)
    ]


@router.post("", response_model=UploadResponse, status_code=201)
async def upload_document(
    file: UploadFile = FastAPIFile(...),
    expire_option: ExpireOption = Form(..., alias="expireOption"),
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
    services: DocumentServices = Depends(get_services),
):
    """Upload a document (or reuse an identical one) and return a signed URL."""
    contents = await file.read()
    if len(contents) > services.settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File exceeds the upload size limit")

    shared = await orchestrator.share(contents, file.filename or "unnamed", expire_option)

    return {
        "storage_path": shared.upload.storage_path,
        "reused": shared.upload.reused,
        "url": shared.grant.url,
        "expires_in": shared.grant.expires_in,
        "record": to_response(shared.upload.record, now_ms()),
    }
