"""History API routes."""
from fastapi import APIRouter, Depends, HTTPException, Query

from docdog.deps import get_ledger, get_orchestrator
from docdog.schemas.common import ClearResponse, DeleteResponse
from docdog.schemas.history import AccessGrantResponse, HistoryRecordResponse
from docdog.services.documents.expiry import is_expired, now_ms
from docdog.services.documents.ledger import HistoryLedger
from docdog.services.documents.models import HistoryRecord
from docdog.services.documents.orchestrator import UploadOrchestrator

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("", response_model=list[HistoryRecordResponse])
async def list_history(
    include_expired: bool = Query(True),
    ledger: HistoryLedger = Depends(get_ledger),
):
    """List upload history, newest first."""
    now = now_ms()
    return [
        to_response(record, now)
        for record in ledger.snapshot()
        if include_expired or not is_expired(record, now)
    ]


@router.post("/{storage_path:path}/open", response_model=AccessGrantResponse)
async def open_document(
    storage_path: str,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
):
    """Issue a fresh signed URL for a live document."""
    grant = await orchestrator.open(storage_path)
    return {"url": grant.url, "expires_in": grant.expires_in}


@router.delete("/{storage_path:path}", response_model=DeleteResponse)
async def delete_history_record(
    storage_path: str,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
):
    """Delete a document's blob and its history record."""
    if not await orchestrator.delete(storage_path):
        raise HTTPException(status_code=404, detail="History record not found")
    return {"deleted": True, "storage_path": storage_path}


@router.delete("", response_model=ClearResponse)
async def clear_history(
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
):
    """Delete every document in the caller's history."""
    removed = await orchestrator.clear()
    return {"removed": removed}


def to_response(record: HistoryRecord, now: int) -> dict:
    """Convert a history record to response dict."""
    return {
        "display_name": record.display_name,
        "storage_path": record.storage_path,
        "content_fingerprint": record.content_fingerprint,
        "expire_option": record.expire_option,
        "created_at": record.created_at,
        "expires_at": record.expires_at,
        "expired": is_expired(record, now),
    }
