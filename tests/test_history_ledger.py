import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from sheet_service.errors import InternalError, NotFoundError
from sheet_service.history import HistoryLedger, parse_record_type
from sheet_service.models import ChangeData, Record, RecordType
from sheet_service.storage_backends.file_backend import FileHistoryStore
from sheet_service.storage_backends.interfaces import StoreError
from sheet_service.storage_backends.sqlite_backend import SQLiteDatabase, SQLiteHistoryStore

CHARACTER_ID = "c0ffee00-0000-4000-8000-000000000002"


def _record(name="level", record_id=None):
    return Record(
        type=RecordType.LEVEL_CHANGED,
        name=name,
        id=record_id or str(uuid.uuid4()),
        data=ChangeData(old={"value": 1}, new={"value": 2}),
        timestamp=datetime.now(timezone.utc),
    )


@pytest.fixture(params=["file", "sqlite"])
def store(request, tmp_path):
    if request.param == "file":
        yield FileHistoryStore(tmp_path / "history")
        return
    db = SQLiteDatabase(tmp_path / "history.sqlite")
    yield SQLiteHistoryStore(db)
    db.close()


@pytest.fixture()
def ledger(store):
    return HistoryLedger(store, capacity=3, backoff_seconds=0)


def test_first_append_creates_block_one(ledger):
    stored = ledger.append(CHARACTER_ID, _record())
    assert stored.number == 1
    block = ledger.by_block_number(CHARACTER_ID, 1)
    assert block.previous_block_id is None
    assert [record.id for record in block.changes] == [stored.id]


def test_rollover_links_blocks_and_keeps_numbering(ledger):
    stored = [ledger.append(CHARACTER_ID, _record(name=f"r{i}")) for i in range(7)]
    assert [record.number for record in stored] == list(range(1, 8))

    blocks = ledger.latest(CHARACTER_ID, limit=None)
    assert [block.block_number for block in blocks] == [3, 2, 1]
    assert [len(block.changes) for block in blocks] == [1, 3, 3]
    assert blocks[0].previous_block_id == blocks[1].block_id
    assert blocks[1].previous_block_id == blocks[2].block_id
    assert ledger.verify_chain(CHARACTER_ID) == []


def test_append_is_idempotent_by_record_id(ledger):
    record = _record()
    first = ledger.append(CHARACTER_ID, record)
    second = ledger.append(CHARACTER_ID, record)
    assert first.number == second.number == 1
    assert len(ledger.by_block_number(CHARACTER_ID, 1).changes) == 1


def test_latest_record_and_find_record(ledger):
    records = [ledger.append(CHARACTER_ID, _record(name=f"r{i}")) for i in range(4)]
    assert ledger.latest_record(CHARACTER_ID).id == records[-1].id

    block, index = ledger.find_record(CHARACTER_ID, records[1].id)
    assert block.block_number == 1
    assert index == 1
    with pytest.raises(NotFoundError):
        ledger.find_record(CHARACTER_ID, str(uuid.uuid4()))
    with pytest.raises(NotFoundError):
        ledger.find_record(CHARACTER_ID, records[1].id, block_number=2)


def test_set_comment_in_older_block(ledger):
    records = [ledger.append(CHARACTER_ID, _record(name=f"r{i}")) for i in range(5)]
    block, updated = ledger.set_comment(CHARACTER_ID, records[0].id, "first steps")
    assert block.block_number == 1
    assert updated.comment == "first steps"
    assert ledger.by_block_number(CHARACTER_ID, 1).changes[0].comment == "first steps"


def test_missing_history(ledger):
    assert ledger.latest(CHARACTER_ID) == []
    with pytest.raises(NotFoundError):
        ledger.by_block_number(CHARACTER_ID, 1)
    with pytest.raises(NotFoundError):
        ledger.latest_record(CHARACTER_ID)


def test_delete_removes_all_blocks(ledger):
    for i in range(4):
        ledger.append(CHARACTER_ID, _record(name=f"r{i}"))
    assert ledger.delete(CHARACTER_ID) == 2
    assert ledger.latest(CHARACTER_ID) == []


def test_verify_chain_reports_broken_link(tmp_path):
    store = FileHistoryStore(tmp_path / "history")
    ledger = HistoryLedger(store, capacity=2)
    for i in range(3):
        ledger.append(CHARACTER_ID, _record(name=f"r{i}"))
    store.create_block(
        {
            "characterId": CHARACTER_ID,
            "blockNumber": 3,
            "blockId": str(uuid.uuid4()),
            "previousBlockId": "not-a-block",
            "changes": [],
        }
    )
    problems = ledger.verify_chain(CHARACTER_ID)
    assert len(problems) == 1
    assert "previousBlockId" in problems[0]


class _FailingStore(FileHistoryStore):
    def append_record(self, character_id, block_number, record, expected_count):
        raise StoreError("disk full")


def test_append_gives_up_after_retries(tmp_path):
    ledger = HistoryLedger(_FailingStore(tmp_path / "history"), append_attempts=2, backoff_seconds=0)
    with pytest.raises(InternalError):
        ledger.append(CHARACTER_ID, _record())


def test_parse_record_type():
    assert parse_record_type("skill_changed") == RecordType.SKILL_CHANGED
    assert parse_record_type("unknown") is None


def test_store_append_rejects_stale_count(ledger, store):
    ledger.append(CHARACTER_ID, _record())
    assert not store.append_record(CHARACTER_ID, 1, _record().to_document(), expected_count=0)
    assert store.append_record(CHARACTER_ID, 1, _record().to_document(), expected_count=1)
    assert len(ledger.by_block_number(CHARACTER_ID, 1).changes) == 2


def test_concurrent_appends_keep_chain_intact(store):
    ledger = HistoryLedger(store, capacity=5, backoff_seconds=0)

    def _append_five(worker):
        return [ledger.append(CHARACTER_ID, _record(name=f"w{worker}-{i}")).number for i in range(5)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = [number for batch in pool.map(_append_five, range(8)) for number in batch]

    assert sorted(numbers) == list(range(1, 41))
    assert ledger.verify_chain(CHARACTER_ID) == []
    blocks = ledger.latest(CHARACTER_ID, limit=None)
    assert [len(block.changes) for block in blocks] == [5] * 8


def test_has_record(ledger):
    stored = [ledger.append(CHARACTER_ID, _record(name=f"r{i}")) for i in range(4)]
    assert ledger.has_record(CHARACTER_ID, stored[-1].id)
    assert ledger.has_record(CHARACTER_ID, stored[0].id)
    assert not ledger.has_record(CHARACTER_ID, str(uuid.uuid4()))
