"""Process-wide wiring for the document services.

One configured blob store and connectivity probe are shared by the whole
process and handed to each orchestrator explicitly. Ledgers are opened per
principal: local ledgers are cached for the process lifetime, database
ledgers are loaded fresh for each use since the table is the authority.
"""
import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docdog.config import Settings
from docdog.services.blob_storage import BlobStore, create_blob_store
from docdog.services.connectivity import ConnectivityProbe, create_probe
from docdog.services.documents.ledger import HistoryLedger
from docdog.services.documents.orchestrator import UploadOrchestrator
from docdog.services.documents.record_store import (
    DatabaseRecordStore,
    LocalRecordStore,
    history_key,
)
from docdog.services.identity import IdentityProvider, StaticIdentityProvider


class DocumentServices:
    def __init__(
        self,
        settings: Settings,
        blob_store: Optional[BlobStore] = None,
        probe: Optional[ConnectivityProbe] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        if settings.LEDGER_BACKEND not in ("local", "database"):
            raise ValueError(f"Unknown ledger backend: {settings.LEDGER_BACKEND}")
        if settings.LEDGER_BACKEND == "database" and session_factory is None:
            raise ValueError("A session factory is required for the database ledger backend")
        self.settings = settings
        self.blob_store = blob_store or create_blob_store(settings)
        self.probe = probe or create_probe(
            settings.CONNECTIVITY_CHECK_URL, settings.CONNECTIVITY_TIMEOUT_SECONDS
        )
        self.identity: IdentityProvider = StaticIdentityProvider(settings.DEFAULT_USER_ID)
        self._session_factory = session_factory
        self._local_ledgers: dict[str, HistoryLedger] = {}
        self._open_lock = asyncio.Lock()

    @property
    def uses_database(self) -> bool:
        return self.settings.LEDGER_BACKEND == "database"

    async def open_ledger(self, principal_id: str) -> HistoryLedger:
        """Loaded ledger for ``principal_id``. LedgerUnavailable propagates."""
        if self.uses_database:
            ledger = HistoryLedger(DatabaseRecordStore(self._session_factory, principal_id))
            await ledger.load()
            return ledger

        async with self._open_lock:
            ledger = self._local_ledgers.get(principal_id)
            if ledger is None:
                store = LocalRecordStore(self.settings.LEDGER_FILE_PATH, key=history_key(principal_id))
                ledger = HistoryLedger(store)
                await ledger.load()
                self._local_ledgers[principal_id] = ledger
            return ledger

    async def ledgers_for_sweep(self) -> list[HistoryLedger]:
        """Every ledger the reaper should look at."""
        if self.uses_database:
            ledger = HistoryLedger(DatabaseRecordStore(self._session_factory, user_id=None))
            await ledger.load()
            return [ledger]

        principals = await LocalRecordStore(self.settings.LEDGER_FILE_PATH).principals()
        return [await self.open_ledger(p) for p in principals]

    def orchestrator(self, ledger: HistoryLedger, principal_id: str) -> UploadOrchestrator:
        return UploadOrchestrator(
            ledger,
            self.blob_store,
            principal_id=principal_id,
            probe=self.probe,
            dedup_enabled=self.settings.DEDUP_ENABLED,
            allow_permanent=self.settings.ALLOW_PERMANENT,
        )

    async def close(self) -> None:
        await self.blob_store.close()
