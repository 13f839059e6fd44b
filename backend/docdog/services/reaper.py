"""Expired-object reaper.

Deletes the blobs of expired history records, then the records themselves.
Runs once on startup and then periodically as an asyncio task within the
FastAPI process, like a small background worker.

Removal is best effort: an expired object may physically outlive its
deadline by up to one sweep interval. Access is already refused by then,
because signed URLs lapse and open() checks expiry.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from docdog.services.blob_storage import BlobStore
from docdog.services.documents.errors import BlobNotFound, DocDogError
from docdog.services.documents.expiry import now_ms
from docdog.services.documents.ledger import HistoryLedger

logger = logging.getLogger(__name__)


@dataclass
class SweepSummary:
    examined: int = 0
    deleted: list[str] = field(default_factory=list)
    already_absent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class ExpiredObjectReaper:
    """Removes expired documents from one ledger and its blob store."""

    def __init__(self, ledger: HistoryLedger, blob_store: BlobStore):
        self.ledger = ledger
        self._blob_store = blob_store

    async def sweep(self, now: int) -> SweepSummary:
        """Delete every record expired at ``now``, object first.

        A blob that is already gone counts as deleted. Any other failure
        leaves the record in place for the next sweep.
        """
        summary = SweepSummary(examined=len(self.ledger))
        for record in self.ledger.expired(now):
            path = record.storage_path
            try:
                await self._blob_store.delete(path)
            except BlobNotFound:
                summary.already_absent.append(path)
            except DocDogError as e:
                logger.warning(f"Keeping expired record {path}: blob delete failed: {e}")
                summary.failed.append(path)
                continue

            try:
                await self.ledger.remove(path)
            except DocDogError as e:
                logger.error(f"Deleted blob {path} but could not remove its record: {e}")
                summary.failed.append(path)
                continue
            summary.deleted.append(path)

        if summary.deleted or summary.failed:
            logger.info(
                f"Sweep removed {len(summary.deleted)} expired document(s), "
                f"{len(summary.failed)} left for retry"
            )
        return summary


LedgersFactory = Callable[[], Awaitable[list[HistoryLedger]]]


async def sweep_once(open_ledgers: LedgersFactory, blob_store: BlobStore) -> SweepSummary:
    """Sweep every ledger returned by ``open_ledgers`` at the current time."""
    total = SweepSummary()
    now = now_ms()
    for ledger in await open_ledgers():
        summary = await ExpiredObjectReaper(ledger, blob_store).sweep(now)
        total.examined += summary.examined
        total.deleted.extend(summary.deleted)
        total.already_absent.extend(summary.already_absent)
        total.failed.extend(summary.failed)
    return total


async def reaper_loop(open_ledgers: LedgersFactory, blob_store: BlobStore, interval: float):
    """Main reaper loop. Sweeps every ``interval`` seconds until cancelled."""
    logger.info(f"Expiry reaper started (every {interval:.0f}s)")
    while True:
        await asyncio.sleep(interval)
        try:
            await sweep_once(open_ledgers, blob_store)
        except Exception as e:
            logger.error(f"Reaper loop error: {e}")
