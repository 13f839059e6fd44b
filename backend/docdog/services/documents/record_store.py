"""Record stores backing the history ledger.

Stores deal in raw camelCase dicts so that the ledger, not the store, decides
what to do with a malformed entry. Two backends:

- LocalRecordStore: a small JSON preferences file holding the serialized
  history list under one well-known key.
- DatabaseRecordStore: the ``history_records`` table, scoped per principal.
"""
import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles
from sqlalchemy import delete, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docdog.models.history_record import HistoryRecordRow
from docdog.services.documents.errors import LedgerUnavailable
from docdog.services.documents.models import HistoryRecord

HISTORY_KEY = "upload_history"
DEFAULT_PRINCIPAL = "default"

# One lock per preferences file: several principals' stores may share a file.
_file_locks: dict[Path, asyncio.Lock] = {}


def history_key(principal_id: str = DEFAULT_PRINCIPAL) -> str:
    """Preferences key holding one principal's history list."""
    if principal_id == DEFAULT_PRINCIPAL:
        return HISTORY_KEY
    return f"{HISTORY_KEY}:{principal_id}"


class RecordStore(ABC):
    """Persistence behind a HistoryLedger. Every call hits the backing store."""

    @abstractmethod
    async def list_raw(self) -> list:
        """Return every stored entry, newest first, without validating them."""
        pass

    @abstractmethod
    async def insert(self, record: HistoryRecord) -> None:
        pass

    @abstractmethod
    async def delete_by_key(self, storage_path: str) -> None:
        """Delete the entry for ``storage_path``. Missing entries are not an error."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    async def query_by_fingerprint(self, fingerprint: str) -> Optional[dict]:
        """Newest entry with this fingerprint, for stores that can query remotely."""
        return None


class LocalRecordStore(RecordStore):
    """History list kept in a JSON preferences file.

    The file is a JSON object; the history lives under ``key`` and other keys
    are left untouched. Writes go to a temp file and are moved into place so a
    crash mid-write never truncates the history.
    """

    def __init__(self, path: str | os.PathLike, key: str = HISTORY_KEY):
        self.path = Path(path)
        self.key = key
        self._file_lock = _file_locks.setdefault(self.path.resolve(), asyncio.Lock())

    async def read_prefs(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                contents = await f.read()
            prefs = json.loads(contents) if contents.strip() else {}
        except (OSError, ValueError) as e:
            raise LedgerUnavailable(f"Cannot read {self.path}: {e}") from e
        if not isinstance(prefs, dict):
            raise LedgerUnavailable(f"{self.path} does not contain a JSON object")
        return prefs

    async def _write_prefs(self, prefs: dict) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(prefs, ensure_ascii=False))
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise LedgerUnavailable(f"Cannot write {self.path}: {e}") from e

    async def _read_entries(self) -> tuple[dict, list]:
        prefs = await self.read_prefs()
        entries = prefs.get(self.key, [])
        if not isinstance(entries, list):
            raise LedgerUnavailable(f"'{self.key}' in {self.path} is not a list")
        return prefs, entries

    async def list_raw(self) -> list:
        _, entries = await self._read_entries()
        return entries

    async def insert(self, record: HistoryRecord) -> None:
        async with self._file_lock:
            prefs, entries = await self._read_entries()
            prefs[self.key] = [record.to_dict(), *entries]
            await self._write_prefs(prefs)

    async def delete_by_key(self, storage_path: str) -> None:
        async with self._file_lock:
            prefs, entries = await self._read_entries()
            remaining = [
                e for e in entries
                if not (isinstance(e, dict) and e.get("storagePath") == storage_path)
            ]
            if len(remaining) == len(entries):
                return
            prefs[self.key] = remaining
            await self._write_prefs(prefs)

    async def clear(self) -> None:
        async with self._file_lock:
            prefs, _ = await self._read_entries()
            prefs[self.key] = []
            await self._write_prefs(prefs)

    async def principals(self) -> list[str]:
        """Principals that have a history list in this preferences file."""
        found = []
        for key in await self.read_prefs():
            if key == HISTORY_KEY:
                found.append(DEFAULT_PRINCIPAL)
            elif key.startswith(f"{HISTORY_KEY}:"):
                found.append(key.split(":", 1)[1])
        return found


class DatabaseRecordStore(RecordStore):
    """History rows in the ``history_records`` table.

    ``user_id`` scopes every query to one principal. ``None`` means unscoped
    and is only meant for maintenance work such as the expiry sweep.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        user_id: Optional[str] = "default",
    ):
        self._session_factory = session_factory
        self.user_id = user_id

    def _scoped(self, stmt):
        if self.user_id is not None:
            stmt = stmt.where(HistoryRecordRow.user_id == self.user_id)
        return stmt

    async def list_raw(self) -> list:
        query = self._scoped(
            select(HistoryRecordRow).order_by(desc(HistoryRecordRow.created_at))
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return [_row_to_dict(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise LedgerUnavailable(f"Cannot read history records: {e}") from e

    async def insert(self, record: HistoryRecord) -> None:
        row = HistoryRecordRow(
            storage_path=record.storage_path,
            display_name=record.display_name,
            content_fingerprint=record.content_fingerprint,
            expire_option=record.expire_option.value,
            created_at=record.created_at,
            user_id=self.user_id or "default",
        )
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
        except SQLAlchemyError as e:
            raise LedgerUnavailable(f"Cannot insert history record: {e}") from e

    async def delete_by_key(self, storage_path: str) -> None:
        stmt = self._scoped(
            delete(HistoryRecordRow).where(HistoryRecordRow.storage_path == storage_path)
        )
        await self._execute_write(stmt)

    async def clear(self) -> None:
        await self._execute_write(self._scoped(delete(HistoryRecordRow)))

    async def query_by_fingerprint(self, fingerprint: str) -> Optional[dict]:
        query = self._scoped(
            select(HistoryRecordRow)
            .where(HistoryRecordRow.content_fingerprint == fingerprint)
            .order_by(desc(HistoryRecordRow.created_at))
            .limit(1)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise LedgerUnavailable(f"Cannot query history records: {e}") from e
        return _row_to_dict(row) if row else None

    async def _execute_write(self, stmt) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(stmt)
                await db.commit()
        except SQLAlchemyError as e:
            raise LedgerUnavailable(f"Cannot update history records: {e}") from e


def _row_to_dict(row: HistoryRecordRow) -> dict:
    """Convert SQLAlchemy row to the persisted record shape."""
    return {
        "displayName": row.display_name,
        "storagePath": row.storage_path,
        "contentFingerprint": row.content_fingerprint,
        "expireOption": row.expire_option,
        "createdAt": row.created_at,
    }
