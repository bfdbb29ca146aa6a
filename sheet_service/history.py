"""
Append-only history ledger.

The history of a character is a chain of blocks. Each block holds up to
``capacity`` records and points at its predecessor through
``previousBlockId``; block 1 has no predecessor. Records are numbered
monotonically across the whole chain and are never removed; only their
``comment`` may be changed after the fact.
"""

import time
import uuid
from typing import Dict, List, Optional, Tuple

from .errors import ErrorContext, InternalError, NotFoundError
from .logging_config import get_logger
from .models import HistoryBlock, Record, RecordType
from .storage_backends.interfaces import BlockExistsError, HistoryStore, StoreError

logger = get_logger(__name__)

_RECORD_TYPE_TABLE: Dict[str, RecordType] = {
    "CHARACTER_CREATED": RecordType.CHARACTER_CREATED,
    "LEVEL_CHANGED": RecordType.LEVEL_CHANGED,
    "CALCULATION_POINTS_CHANGED": RecordType.CALCULATION_POINTS_CHANGED,
    "BASE_VALUE_CHANGED": RecordType.BASE_VALUE_CHANGED,
    "SPECIAL_ABILITIES_CHANGED": RecordType.SPECIAL_ABILITIES_CHANGED,
    "ATTRIBUTE_CHANGED": RecordType.ATTRIBUTE_CHANGED,
    "SKILL_CHANGED": RecordType.SKILL_CHANGED,
    "COMBAT_VALUES_CHANGED": RecordType.COMBAT_VALUES_CHANGED,
}


def parse_record_type(value: Optional[str]) -> Optional[RecordType]:
    if value is None:
        return None
    return _RECORD_TYPE_TABLE.get(value.strip().upper())


class HistoryLedger:
    def __init__(
        self,
        store: HistoryStore,
        capacity: int = 100,
        append_attempts: int = 3,
        backoff_seconds: float = 0.05,
    ):
        self.store = store
        self.capacity = capacity
        self.append_attempts = max(1, append_attempts)
        self.backoff_seconds = backoff_seconds

    # Reads

    def latest(self, character_id: str, limit: Optional[int] = 1) -> List[HistoryBlock]:
        blocks = self.store.query_blocks(character_id, descending=True, limit=limit)
        return [HistoryBlock.model_validate(block) for block in blocks]

    def by_block_number(self, character_id: str, block_number: int) -> HistoryBlock:
        block = self.store.get_block(character_id, block_number)
        if block is None:
            raise NotFoundError(
                f"History block {block_number} not found",
                ErrorContext(character_id=character_id, metadata={"block_number": block_number}),
            )
        return HistoryBlock.model_validate(block)

    def find_record(
        self, character_id: str, record_id: str, block_number: Optional[int] = None
    ) -> Tuple[HistoryBlock, int]:
        """Locate a record by id, newest block first. Returns the block and the record's index."""
        if block_number is not None:
            blocks = [self.by_block_number(character_id, block_number)]
        else:
            blocks = self.latest(character_id, limit=None)
        for block in blocks:
            for index, record in enumerate(block.changes):
                if record.id == record_id:
                    return block, index
        raise NotFoundError(
            f"History record {record_id} not found",
            ErrorContext(character_id=character_id, metadata={"record_id": record_id}),
        )

    def has_record(self, character_id: str, record_id: str) -> bool:
        """Whether the record is among the latest two blocks, where the newest append always lands."""
        return any(record.id == record_id for block in self.latest(character_id, limit=2) for record in block.changes)

    def latest_record(self, character_id: str) -> Record:
        for block in self.latest(character_id, limit=2):
            if block.changes:
                return block.changes[-1]
        raise NotFoundError("No history records found", ErrorContext(character_id=character_id))

    # Writes

    def new_block(
        self,
        character_id: str,
        previous_block_number: Optional[int] = None,
        previous_block_id: Optional[str] = None,
    ) -> HistoryBlock:
        """Create the block following ``previous_block_number``, or block 1.

        Raises ``BlockExistsError`` if another writer created it first.
        """
        block = HistoryBlock(
            character_id=character_id,
            block_number=(previous_block_number or 0) + 1,
            block_id=str(uuid.uuid4()),
            previous_block_id=previous_block_id,
            changes=[],
        )
        self.store.create_block(block.to_document())
        logger.info("History block created", character_id=character_id, block_number=block.block_number)
        return block

    def append(self, character_id: str, record: Record) -> Record:
        failures = 0
        while True:
            try:
                stored = self._try_append(character_id, record)
            except BlockExistsError:
                logger.debug("History block created concurrently, re-reading", character_id=character_id)
                continue
            except StoreError as exc:
                failures += 1
                if failures >= self.append_attempts:
                    logger.error(
                        "History append failed",
                        character_id=character_id,
                        record_id=record.id,
                        attempts=failures,
                        error=str(exc),
                    )
                    raise InternalError(
                        f"Failed to append history record: {exc}",
                        ErrorContext(character_id=character_id, operation="history_append"),
                    ) from exc
                logger.warning("History append failed, retrying", character_id=character_id, attempt=failures)
                time.sleep(self.backoff_seconds * (2 ** (failures - 1)))
                continue
            if stored is not None:
                return stored

    def _try_append(self, character_id: str, record: Record) -> Optional[Record]:
        """One append attempt. Returns ``None`` when the chain changed and must be re-read."""
        blocks = self.latest(character_id, limit=2)
        if not blocks:
            self.new_block(character_id)
            return None

        for block in blocks:
            for existing in block.changes:
                if existing.id == record.id:
                    return existing

        latest = blocks[0]
        if len(latest.changes) >= self.capacity:
            self.new_block(character_id, latest.block_number, latest.block_id)
            return None

        if latest.changes:
            last_number = latest.changes[-1].number
        elif len(blocks) > 1 and blocks[1].changes:
            last_number = blocks[1].changes[-1].number
        else:
            last_number = 0

        stamped = record.model_copy(update={"number": last_number + 1})
        appended = self.store.append_record(
            character_id, latest.block_number, stamped.to_document(), expected_count=len(latest.changes)
        )
        if not appended:
            return None
        logger.info(
            "History record appended",
            character_id=character_id,
            block_number=latest.block_number,
            record_number=stamped.number,
            record_type=stamped.type.name,
        )
        return stamped

    def set_comment(
        self, character_id: str, record_id: str, comment: str, block_number: Optional[int] = None
    ) -> Tuple[HistoryBlock, Record]:
        block, index = self.find_record(character_id, record_id, block_number)
        try:
            self.store.set_record_comment(character_id, block.block_number, index, comment)
        except StoreError as exc:
            raise InternalError(
                f"Failed to update history record comment: {exc}",
                ErrorContext(character_id=character_id, operation="set_comment"),
            ) from exc
        updated = block.changes[index].model_copy(update={"comment": comment})
        return block, updated

    def delete(self, character_id: str) -> int:
        deleted = self.store.delete_blocks(character_id)
        logger.info("History deleted", character_id=character_id, blocks=deleted)
        return deleted

    # Integrity

    def verify_chain(self, character_id: str) -> List[str]:
        """Return a description of every chain-integrity problem found."""
        problems: List[str] = []
        blocks = [HistoryBlock.model_validate(b) for b in self.store.query_blocks(character_id, descending=False)]
        seen_ids = set()
        last_number = 0
        previous: Optional[HistoryBlock] = None
        for expected_number, block in enumerate(blocks, start=1):
            if block.block_number != expected_number:
                problems.append(f"block {block.block_number}: expected block number {expected_number}")
            expected_previous = previous.block_id if previous else None
            if block.previous_block_id != expected_previous:
                problems.append(
                    f"block {block.block_number}: previousBlockId {block.previous_block_id} "
                    f"does not match {expected_previous}"
                )
            if len(block.changes) > self.capacity:
                problems.append(f"block {block.block_number}: {len(block.changes)} records exceed capacity")
            for record in block.changes:
                if record.id in seen_ids:
                    problems.append(f"block {block.block_number}: duplicate record id {record.id}")
                seen_ids.add(record.id)
                if record.number <= last_number:
                    problems.append(
                        f"block {block.block_number}: record number {record.number} does not follow {last_number}"
                    )
                last_number = record.number
            previous = block
        return problems
