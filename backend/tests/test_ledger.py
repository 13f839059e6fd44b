"""History ledger over the local preferences-file store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import make_record
from docdog.services.documents.errors import LedgerUnavailable
from docdog.services.documents.expiry import ExpireOption
from docdog.services.documents.ledger import HistoryLedger
from docdog.services.documents.models import HistoryRecord
from docdog.services.documents.record_store import (
    HISTORY_KEY,
    LocalRecordStore,
    RecordStore,
    history_key,
)


class _BrokenStore(RecordStore):
    """Reads fine, fails every write."""

    def __init__(self, entries: list | None = None) -> None:
        self.entries = entries or []

    async def list_raw(self) -> list:
        return list(self.entries)

    async def insert(self, record: HistoryRecord) -> None:
        raise LedgerUnavailable("disk full")

    async def delete_by_key(self, storage_path: str) -> None:
        raise LedgerUnavailable("disk full")

    async def clear(self) -> None:
        raise LedgerUnavailable("disk full")


def _write_prefs(path: Path, prefs: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(prefs), encoding="utf-8")


async def _reload(prefs_path: Path) -> HistoryLedger:
    ledger = HistoryLedger(LocalRecordStore(prefs_path))
    await ledger.load()
    return ledger


@pytest.mark.asyncio
async def test_missing_file_loads_empty(ledger: HistoryLedger) -> None:
    assert ledger.snapshot() == ()
    assert len(ledger) == 0


@pytest.mark.asyncio
async def test_records_survive_reload_newest_first(ledger: HistoryLedger, prefs_path: Path) -> None:
    records = [
        make_record("default/a.pdf", option=ExpireOption.ONE_HOUR, created_at=1_000, fingerprint="aa"),
        make_record("default/b.pdf", option=ExpireOption.THIRTY_DAYS, created_at=2_000),
        make_record("default/c.pdf", option=ExpireOption.PERMANENT, created_at=0, display_name="notes.txt"),
    ]
    for record in records:
        await ledger.add(record)

    reloaded = await _reload(prefs_path)

    assert reloaded.snapshot() == tuple(reversed(records))
    assert reloaded.snapshot() == ledger.snapshot()


@pytest.mark.asyncio
async def test_persisted_entries_use_camel_case_and_option_names(
    ledger: HistoryLedger, prefs_path: Path
) -> None:
    await ledger.add(make_record("default/a.pdf", fingerprint="ff00"))

    prefs = json.loads(prefs_path.read_text(encoding="utf-8"))

    assert prefs[HISTORY_KEY] == [{
        "displayName": "report.pdf",
        "storagePath": "default/a.pdf",
        "contentFingerprint": "ff00",
        "expireOption": "SEVEN_DAYS",
        "createdAt": 1_000_000,
    }]


@pytest.mark.asyncio
async def test_malformed_entries_are_skipped(prefs_path: Path) -> None:
    good = make_record("default/good.pdf").to_dict()
    _write_prefs(prefs_path, {HISTORY_KEY: [
        good,
        {"displayName": "x.pdf", "expireOption": "ONE_HOUR", "createdAt": 5},
        {**good, "storagePath": "default/odd.pdf", "expireOption": "FOREVER"},
        {**good, "storagePath": "default/neg.pdf", "createdAt": -1},
        "not an object",
    ]})

    ledger = await _reload(prefs_path)

    assert [r.storage_path for r in ledger] == ["default/good.pdf"]


@pytest.mark.asyncio
async def test_duplicate_storage_paths_keep_first(prefs_path: Path) -> None:
    first = make_record("default/a.pdf", created_at=2_000).to_dict()
    second = make_record("default/a.pdf", created_at=1_000).to_dict()
    _write_prefs(prefs_path, {HISTORY_KEY: [first, second]})

    ledger = await _reload(prefs_path)

    assert len(ledger) == 1
    assert ledger.get("default/a.pdf").created_at == 2_000


@pytest.mark.asyncio
async def test_unreadable_file_raises_and_leaves_ledger_empty(prefs_path: Path) -> None:
    _write_prefs(prefs_path, {HISTORY_KEY: [make_record("default/a.pdf").to_dict()]})
    ledger = await _reload(prefs_path)
    assert len(ledger) == 1

    prefs_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(LedgerUnavailable):
        await ledger.load()

    assert ledger.snapshot() == ()


@pytest.mark.asyncio
async def test_history_that_is_not_a_list_is_unavailable(prefs_path: Path) -> None:
    _write_prefs(prefs_path, {HISTORY_KEY: {"oops": True}})

    with pytest.raises(LedgerUnavailable):
        await _reload(prefs_path)


@pytest.mark.asyncio
async def test_remove_and_clear_write_through(ledger: HistoryLedger, prefs_path: Path) -> None:
    await ledger.add(make_record("default/a.pdf"))
    await ledger.add(make_record("default/b.pdf"))

    assert await ledger.remove("default/a.pdf") is True
    assert [r.storage_path for r in await _reload(prefs_path)] == ["default/b.pdf"]

    await ledger.clear()
    assert len(ledger) == 0
    assert len(await _reload(prefs_path)) == 0


@pytest.mark.asyncio
async def test_removing_unknown_path_is_a_no_op(ledger: HistoryLedger, prefs_path: Path) -> None:
    await ledger.add(make_record("default/a.pdf"))
    before = prefs_path.read_text(encoding="utf-8")

    assert await ledger.remove("default/missing.pdf") is False
    assert prefs_path.read_text(encoding="utf-8") == before
    assert len(ledger) == 1


@pytest.mark.asyncio
async def test_adding_same_storage_path_twice_is_rejected(ledger: HistoryLedger) -> None:
    await ledger.add(make_record("default/a.pdf"))

    with pytest.raises(ValueError):
        await ledger.add(make_record("default/a.pdf", created_at=5))
    assert len(ledger) == 1


@pytest.mark.asyncio
async def test_failed_write_leaves_memory_unchanged() -> None:
    existing = make_record("default/a.pdf")
    ledger = HistoryLedger(_BrokenStore([existing.to_dict()]))
    await ledger.load()

    with pytest.raises(LedgerUnavailable):
        await ledger.add(make_record("default/b.pdf"))
    with pytest.raises(LedgerUnavailable):
        await ledger.remove("default/a.pdf")
    with pytest.raises(LedgerUnavailable):
        await ledger.clear()

    assert ledger.snapshot() == (existing,)


@pytest.mark.asyncio
async def test_find_by_fingerprint_returns_newest_match(ledger: HistoryLedger) -> None:
    await ledger.add(make_record("default/old.pdf", fingerprint="abc", created_at=1))
    await ledger.add(make_record("default/new.pdf", fingerprint="abc", created_at=2))
    await ledger.add(make_record("default/other.pdf", fingerprint="def"))

    match = await ledger.find_by_fingerprint("abc")

    assert match is not None
    assert match.storage_path == "default/new.pdf"
    assert await ledger.find_by_fingerprint("zzz") is None


@pytest.mark.asyncio
async def test_expired_lists_only_lapsed_records(ledger: HistoryLedger) -> None:
    await ledger.add(make_record("default/hour.pdf", option=ExpireOption.ONE_HOUR, created_at=0))
    await ledger.add(make_record("default/week.pdf", option=ExpireOption.SEVEN_DAYS, created_at=0))
    await ledger.add(make_record("default/keep.pdf", option=ExpireOption.PERMANENT, created_at=0))

    expired = ledger.expired(3_600_000)

    assert [r.storage_path for r in expired] == ["default/hour.pdf"]


@pytest.mark.asyncio
async def test_subscribers_see_every_change(ledger: HistoryLedger) -> None:
    seen: list[int] = []
    unsubscribe = ledger.subscribe(lambda snapshot: seen.append(len(snapshot)))

    await ledger.add(make_record("default/a.pdf"))
    await ledger.add(make_record("default/b.pdf"))
    await ledger.remove("default/a.pdf")
    unsubscribe()
    await ledger.clear()

    assert seen == [1, 2, 1]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_mutation(ledger: HistoryLedger) -> None:
    def explode(snapshot):
        raise RuntimeError("boom")

    ledger.subscribe(explode)
    await ledger.add(make_record("default/a.pdf"))

    assert len(ledger) == 1


@pytest.mark.asyncio
async def test_other_preference_keys_are_preserved(prefs_path: Path) -> None:
    _write_prefs(prefs_path, {"theme": "dark", history_key("alice"): []})
    ledger = await _reload(prefs_path)

    await ledger.add(make_record("default/a.pdf"))
    await ledger.clear()

    prefs = json.loads(prefs_path.read_text(encoding="utf-8"))
    assert prefs["theme"] == "dark"
    assert prefs[HISTORY_KEY] == []
    assert history_key("alice") in prefs


@pytest.mark.asyncio
async def test_principals_share_one_file_without_mixing(prefs_path: Path) -> None:
    alice = HistoryLedger(LocalRecordStore(prefs_path, key=history_key("alice")))
    bob = HistoryLedger(LocalRecordStore(prefs_path, key=history_key("bob")))
    await alice.load()
    await bob.load()

    await alice.add(make_record("alice/a.pdf"))
    await bob.add(make_record("bob/b.pdf"))

    assert [r.storage_path for r in alice] == ["alice/a.pdf"]
    assert [r.storage_path for r in bob] == ["bob/b.pdf"]
    assert sorted(await LocalRecordStore(prefs_path).principals()) == ["alice", "bob"]
