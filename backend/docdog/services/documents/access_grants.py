"""Time-bounded access grants (signed URLs) for stored documents."""
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from docdog.services.documents.expiry import ExpireOption, longest_finite_option

if TYPE_CHECKING:
    from docdog.services.blob_storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessGrant:
    url: str
    expires_in: int  # seconds


class AccessGrantIssuer:
    """Mints signed URLs through the blob store.

    Blob stores cannot sign an unbounded URL, so PERMANENT documents are
    granted for the longest finite window instead. The document itself still
    never expires; only each individual link does. Errors from the store
    (BlobNotFound, AuthFailure, NetworkFailure) propagate without retry.
    """

    def __init__(self, blob_store: "BlobStore", permanent_fallback: Optional[ExpireOption] = None):
        self._blob_store = blob_store
        self._permanent_fallback = permanent_fallback or longest_finite_option()

    def grant_ttl(self, option: ExpireOption) -> int:
        """Validity of a grant for ``option``, in whole seconds."""
        if option.is_permanent:
            option = self._permanent_fallback
        return int(option.duration.total_seconds())

    async def issue(self, storage_path: str, option: ExpireOption) -> AccessGrant:
        ttl = self.grant_ttl(option)
        url = await self._blob_store.signed_url(storage_path, ttl)
        logger.info(f"Issued {ttl}s access grant for {storage_path}")
        return AccessGrant(url=url, expires_in=ttl)
