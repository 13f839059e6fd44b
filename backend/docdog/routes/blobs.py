"""Signed download route for the local blob store."""
import mimetypes

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from docdog.deps import get_services
from docdog.services.blob_storage import LocalBlobStore
from docdog.services.registry import DocumentServices

router = APIRouter(prefix="/api/blobs", tags=["blobs"])


@router.get("/{key:path}")
async def download_blob(
    key: str,
    expires: int = Query(...),
    token: str = Query(...),
    services: DocumentServices = Depends(get_services),
):
    """Serve a blob if the signed link is genuine and unexpired."""
    store = services.blob_store
    if not isinstance(store, LocalBlobStore):
        raise HTTPException(status_code=404, detail="Local blob downloads are not enabled")
    if not store.verify(key, expires, token):
        raise HTTPException(status_code=403, detail="Link is invalid or has expired")

    path = store.path_for(key)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        path=path,
        media_type=mimetypes.guess_type(path.name)[0] or "application/octet-stream",
    )
