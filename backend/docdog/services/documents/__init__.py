"""Expiring document access: dedup, history ledger, signed access grants."""
from docdog.services.documents.access_grants import AccessGrant, AccessGrantIssuer
from docdog.services.documents.expiry import ExpireOption, expires_at, is_expired
from docdog.services.documents.fingerprint import fingerprint
from docdog.services.documents.ledger import HistoryLedger
from docdog.services.documents.models import HistoryRecord
from docdog.services.documents.orchestrator import SharedDocument, UploadOrchestrator, UploadResult
from docdog.services.documents.record_store import DatabaseRecordStore, LocalRecordStore, RecordStore

__all__ = [
    "AccessGrant", "AccessGrantIssuer",
    "ExpireOption", "expires_at", "is_expired",
    "fingerprint",
    "HistoryLedger", "HistoryRecord",
    "SharedDocument", "UploadOrchestrator", "UploadResult",
    "DatabaseRecordStore", "LocalRecordStore", "RecordStore",
]
