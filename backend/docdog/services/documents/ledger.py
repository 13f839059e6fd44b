"""History ledger - the set of uploaded documents and their expiry.

The ledger keeps an immutable, newest-first snapshot in memory and writes
every mutation through to its RecordStore before returning, so callers never
need an explicit save. Mutations are serialized by an internal lock that is
held only around the store write.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from docdog.services.documents.errors import LedgerUnavailable, SerializationFailure
from docdog.services.documents.expiry import is_expired
from docdog.services.documents.models import HistoryRecord
from docdog.services.documents.record_store import RecordStore

logger = logging.getLogger(__name__)

Snapshot = tuple[HistoryRecord, ...]


def parse_record(raw: Any) -> HistoryRecord:
    """Validate one persisted entry. Raises SerializationFailure if malformed."""
    if not isinstance(raw, dict):
        raise SerializationFailure(f"Expected an object, got {type(raw).__name__}")
    try:
        return HistoryRecord.from_dict(raw)
    except ValidationError as e:
        raise SerializationFailure(str(e)) from e


class HistoryLedger:
    """Newest-first history of uploaded documents for one principal."""

    def __init__(self, store: RecordStore):
        self._store = store
        self._records: Snapshot = ()
        self._lock = asyncio.Lock()
        self._subscribers: list[Callable[[Snapshot], None]] = []

    @property
    def store(self) -> RecordStore:
        return self._store

    async def load(self) -> Snapshot:
        """Rebuild the ledger from the store.

        Malformed entries are logged and skipped. If the store itself cannot be
        read the ledger is left empty and LedgerUnavailable propagates.
        """
        async with self._lock:
            try:
                raw_entries = await self._store.list_raw()
            except LedgerUnavailable:
                self._replace(())
                raise

            records: list[HistoryRecord] = []
            seen: set[str] = set()
            for index, raw in enumerate(raw_entries):
                try:
                    record = parse_record(raw)
                except SerializationFailure as e:
                    logger.warning(f"Skipping malformed history entry #{index}: {e}")
                    continue
                if record.storage_path in seen:
                    logger.warning(f"Skipping duplicate history entry for {record.storage_path}")
                    continue
                seen.add(record.storage_path)
                records.append(record)

            self._replace(tuple(records))
            skipped = len(raw_entries) - len(records)
            if skipped:
                logger.info(f"Loaded {len(records)} history record(s), skipped {skipped}")
            return self._records

    async def add(self, record: HistoryRecord) -> None:
        """Insert ``record`` at the front and persist it."""
        async with self._lock:
            if self.get(record.storage_path) is not None:
                raise ValueError(f"History already contains {record.storage_path}")
            await self._store.insert(record)
            self._replace((record, *self._records))

    async def remove(self, storage_path: str) -> bool:
        """Remove the record for ``storage_path``. Returns False if it was absent."""
        async with self._lock:
            if self.get(storage_path) is None:
                return False
            await self._store.delete_by_key(storage_path)
            self._replace(tuple(r for r in self._records if r.storage_path != storage_path))
            return True

    async def clear(self) -> None:
        async with self._lock:
            await self._store.clear()
            self._replace(())

    def get(self, storage_path: str) -> Optional[HistoryRecord]:
        for record in self._records:
            if record.storage_path == storage_path:
                return record
        return None

    async def find_by_fingerprint(self, fingerprint: str) -> Optional[HistoryRecord]:
        """Newest record with this content fingerprint, if any."""
        for record in self._records:
            if record.content_fingerprint == fingerprint:
                return record

        raw = await self._store.query_by_fingerprint(fingerprint)
        if raw is None:
            return None
        try:
            return parse_record(raw)
        except SerializationFailure as e:
            logger.warning(f"Ignoring malformed record for fingerprint {fingerprint[:12]}: {e}")
            return None

    def snapshot(self) -> Snapshot:
        return self._records

    def expired(self, now: int) -> Snapshot:
        return tuple(r for r in self._records if is_expired(r, now))

    def subscribe(self, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Call ``callback`` with a fresh snapshot after every change.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def _replace(self, records: Snapshot) -> None:
        self._records = records
        for callback in list(self._subscribers):
            try:
                callback(records)
            except Exception as e:
                logger.error(f"History subscriber failed: {e}")
