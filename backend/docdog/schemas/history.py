"""History response schemas."""
from typing import Optional

from docdog.schemas.base import CamelModel
from docdog.services.documents.expiry import ExpireOption


class HistoryRecordResponse(CamelModel):
    display_name: str
    storage_path: str
    content_fingerprint: Optional[str] = None
    expire_option: ExpireOption
    created_at: int
    expires_at: Optional[int] = None
    expired: bool = False


class AccessGrantResponse(CamelModel):
    url: str
    expires_in: int
