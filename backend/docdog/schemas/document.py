"""Document upload request/response schemas."""
from docdog.schemas.base import CamelModel
from docdog.schemas.history import HistoryRecordResponse
from docdog.services.documents.expiry import ExpireOption


class ExpireOptionResponse(CamelModel):
    value: ExpireOption
    label: str
    duration_seconds: int
    permanent: bool


class UploadResponse(CamelModel):
    storage_path: str
    reused: bool
    url: str
    expires_in: int
    record: HistoryRecordResponse
