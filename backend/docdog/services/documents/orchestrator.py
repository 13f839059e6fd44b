"""Upload workflow: deduplicate, store, record, grant.

A record is added to the ledger only after the blob store confirms the
upload, so every history record points at an object that really was stored.
A failed or cancelled put leaves the ledger untouched.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Callable, Optional

from docdog.services.documents.access_grants import AccessGrant, AccessGrantIssuer
from docdog.services.documents.errors import (
    BlobNotFound,
    DocDogError,
    DocumentExpired,
    LedgerUnavailable,
    NetworkFailure,
    RecordNotFound,
    UnsupportedExpireOption,
)
from docdog.services.documents.expiry import (
    ExpireOption,
    available_options,
    is_expired,
    now_ms,
)
from docdog.services.documents.fingerprint import fingerprint
from docdog.services.documents.ledger import HistoryLedger
from docdog.services.documents.models import HistoryRecord

if TYPE_CHECKING:
    from docdog.services.blob_storage import BlobStore
    from docdog.services.connectivity import ConnectivityProbe

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,10}$")


@dataclass(frozen=True)
class UploadResult:
    storage_path: str
    reused: bool
    record: HistoryRecord


@dataclass(frozen=True)
class SharedDocument:
    upload: UploadResult
    grant: AccessGrant


def new_storage_key(principal_id: str, display_name: str) -> str:
    """Random key ``<principal>/<uuid4>[.ext]``.

    Only a short alphanumeric extension is taken from the display name, as a
    content-type hint. Nothing else from the untrusted name reaches the key.
    """
    suffix = PurePosixPath(display_name.replace("\\", "/")).suffix.lower()
    ext = suffix if _EXTENSION_RE.match(suffix) else ""
    return f"{principal_id}/{uuid.uuid4()}{ext}"


class UploadOrchestrator:
    """Top-level document workflow for one principal's ledger."""

    def __init__(
        self,
        ledger: HistoryLedger,
        blob_store: "BlobStore",
        grant_issuer: Optional[AccessGrantIssuer] = None,
        *,
        principal_id: str = "default",
        probe: Optional["ConnectivityProbe"] = None,
        dedup_enabled: bool = True,
        allow_permanent: bool = False,
        clock: Callable[[], int] = now_ms,
    ):
        self.ledger = ledger
        self._blob_store = blob_store
        self._issuer = grant_issuer or AccessGrantIssuer(blob_store)
        self.principal_id = principal_id
        self._probe = probe
        self.dedup_enabled = dedup_enabled
        self.allow_permanent = allow_permanent
        self._clock = clock

    def available_options(self) -> list[ExpireOption]:
        return available_options(self.allow_permanent)

    async def upload_or_reuse(
        self, data: bytes, display_name: str, option: ExpireOption,
    ) -> UploadResult:
        """Store ``data`` unless this principal already has a live copy of it."""
        self._check_option(option)
        await self._ensure_online()

        content_fp = None
        if self.dedup_enabled:
            content_fp = await fingerprint(data)
            existing = await self.ledger.find_by_fingerprint(content_fp)
            if existing is not None:
                if not is_expired(existing, self._clock()):
                    logger.info(f"Reusing {existing.storage_path} for identical content")
                    return UploadResult(existing.storage_path, reused=True, record=existing)
                logger.info(f"Identical content at {existing.storage_path} has expired, uploading anew")

        storage_path = new_storage_key(self.principal_id, display_name)
        await self._blob_store.put(storage_path, data)

        record = HistoryRecord(
            display_name=display_name,
            storage_path=storage_path,
            content_fingerprint=content_fp,
            expire_option=option,
            created_at=self._clock(),
        )
        try:
            await self.ledger.add(record)
        except LedgerUnavailable:
            await self._discard_orphan(storage_path)
            raise

        logger.info(f"Uploaded {display_name!r} as {storage_path} ({option.value})")
        return UploadResult(storage_path, reused=False, record=record)

    async def share(
        self, data: bytes, display_name: str, option: ExpireOption,
    ) -> SharedDocument:
        """Upload (or reuse) then grant access with the record's own option.

        If issuing the grant fails the upload and its record stay in place;
        the caller can retry with open().
        """
        result = await self.upload_or_reuse(data, display_name, option)
        grant = await self._issuer.issue(result.storage_path, result.record.expire_option)
        return SharedDocument(upload=result, grant=grant)

    async def open(self, storage_path: str) -> AccessGrant:
        """Grant access to a recorded, still-live document."""
        record = self.ledger.get(storage_path)
        if record is None:
            raise RecordNotFound(storage_path)
        if is_expired(record, self._clock()):
            raise DocumentExpired(storage_path, record.expires_at)
        await self._ensure_online()
        return await self._issuer.issue(storage_path, record.expire_option)

    async def delete(self, storage_path: str) -> bool:
        """Delete the blob, then its record. Returns False if nothing was recorded."""
        if self.ledger.get(storage_path) is None:
            return False
        await self._ensure_online()
        try:
            await self._blob_store.delete(storage_path)
        except BlobNotFound:
            logger.info(f"Blob {storage_path} already gone, removing record")
        return await self.ledger.remove(storage_path)

    async def clear(self) -> int:
        """Delete every recorded document. Returns how many were removed."""
        removed = 0
        for record in self.ledger.snapshot():
            if await self.delete(record.storage_path):
                removed += 1
        return removed

    def _check_option(self, option: ExpireOption) -> None:
        if option not in self.available_options():
            raise UnsupportedExpireOption(f"Expire option {option.value} is not enabled")

    async def _ensure_online(self) -> None:
        if self._probe is not None and not await self._probe.is_available():
            raise NetworkFailure("No network connection available")

    async def _discard_orphan(self, storage_path: str) -> None:
        try:
            await self._blob_store.delete(storage_path)
        except DocDogError as e:
            logger.error(f"Could not remove unrecorded blob {storage_path}: {e}")
