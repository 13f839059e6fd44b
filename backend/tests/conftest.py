"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from docdog.models import Base
from docdog.services.blob_storage import BlobStore
from docdog.services.documents.errors import BlobNotFound
from docdog.services.documents.expiry import ExpireOption
from docdog.services.documents.ledger import HistoryLedger
from docdog.services.documents.models import HistoryRecord
from docdog.services.documents.orchestrator import UploadOrchestrator
from docdog.services.documents.record_store import LocalRecordStore


class InMemoryBlobStore(BlobStore):
    """Blob store double with switchable failures."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.put_error: Optional[Exception] = None
        self.sign_error: Optional[Exception] = None
        self.delete_errors: dict[str, Exception] = {}
        self.put_calls = 0
        self.signed: list[tuple[str, int]] = []

    async def put(self, key: str, data: bytes) -> None:
        self.put_calls += 1
        if self.put_error is not None:
            raise self.put_error
        self.objects[key] = bytes(data)

    async def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise BlobNotFound(key)
        return self.objects[key]

    async def delete(self, key: str) -> None:
        if key in self.delete_errors:
            raise self.delete_errors[key]
        self.objects.pop(key, None)

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        if self.sign_error is not None:
            raise self.sign_error
        if key not in self.objects:
            raise BlobNotFound(key)
        self.signed.append((key, ttl_seconds))
        return f"https://blobs.test/{key}?ttl={ttl_seconds}"


class FakeClock:
    """Callable clock returning a settable epoch-millis value."""

    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


class OfflineProbe:
    async def is_available(self) -> bool:
        return False


def make_record(
    storage_path: str,
    *,
    option: ExpireOption = ExpireOption.SEVEN_DAYS,
    created_at: int = 1_000_000,
    fingerprint: Optional[str] = None,
    display_name: str = "report.pdf",
) -> HistoryRecord:
    return HistoryRecord(
        display_name=display_name,
        storage_path=storage_path,
        content_fingerprint=fingerprint,
        expire_option=option,
        created_at=created_at,
    )


@pytest.fixture()
def prefs_path(tmp_path: Path) -> Path:
    return tmp_path / "prefs" / "docdog_prefs.json"


@pytest.fixture()
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture()
async def ledger(prefs_path: Path) -> HistoryLedger:
    ledger = HistoryLedger(LocalRecordStore(prefs_path))
    await ledger.load()
    return ledger


@pytest.fixture()
def orchestrator(
    ledger: HistoryLedger, blob_store: InMemoryBlobStore, clock: FakeClock
) -> UploadOrchestrator:
    return UploadOrchestrator(ledger, blob_store, principal_id="default", clock=clock)


@pytest_asyncio.fixture()
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """File-backed SQLite database with the schema applied."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'docdog.sqlite'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
