#!/usr/bin/env python
"""Check the block chain of character histories for integrity problems."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sheet_service.config import Settings
from sheet_service.history import HistoryLedger, parse_record_type
from sheet_service.storage_backends.file_backend import FileHistoryStore
from sheet_service.storage_backends.interfaces import HistoryStore
from sheet_service.storage_backends.sqlite_backend import SQLiteDatabase, SQLiteHistoryStore


def _file_character_ids(settings: Settings) -> List[str]:
    if not settings.history_path.exists():
        return []
    return sorted(p.name for p in settings.history_path.iterdir() if p.is_dir())


def _sqlite_character_ids(db: SQLiteDatabase) -> List[str]:
    rows = db.conn.execute("SELECT DISTINCT character_id FROM history_blocks ORDER BY character_id").fetchall()
    return [row["character_id"] for row in rows]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify character history chains.")
    parser.add_argument("--source", required=True, help="Path to the repository root containing data/")
    parser.add_argument("--db", help="Verify a SQLite database instead of the file backend")
    parser.add_argument("--characters", help="Comma-separated list of character ids (defaults to all found)")
    parser.add_argument("--type", dest="record_type", help="Also count records of this type, e.g. SKILL_CHANGED")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    source_root = Path(args.source).resolve()
    if not source_root.exists():
        print(f"[ERROR] Source path {source_root} does not exist", file=sys.stderr)
        return 1

    record_type = None
    if args.record_type:
        record_type = parse_record_type(args.record_type)
        if record_type is None:
            print(f"[ERROR] Unknown record type: {args.record_type}", file=sys.stderr)
            return 1

    settings = Settings(repo_root=source_root, data_root=None)
    db: Optional[SQLiteDatabase] = None
    store: HistoryStore
    if args.db:
        db_path = Path(args.db.replace("sqlite:///", "", 1))
        if not db_path.is_absolute():
            db_path = source_root / db_path
        if not db_path.exists():
            print(f"[ERROR] SQLite DB {db_path} does not exist", file=sys.stderr)
            return 1
        db = SQLiteDatabase(db_path)
        store = SQLiteHistoryStore(db)
        character_ids = _sqlite_character_ids(db)
        print(f"[INFO] Verifying SQLite DB: {db_path}")
    else:
        store = FileHistoryStore(settings.history_path)
        character_ids = _file_character_ids(settings)
        print(f"[INFO] Verifying history under: {settings.history_path}")

    if args.characters:
        character_ids = [cid.strip() for cid in args.characters.split(",") if cid.strip()]

    ledger = HistoryLedger(store, capacity=settings.history_block_capacity)
    broken = 0
    try:
        for character_id in character_ids:
            blocks = store.query_blocks(character_id, descending=False)
            if not blocks:
                broken += 1
                print(f"[FAIL] {character_id}: no history found")
                continue
            problems = ledger.verify_chain(character_id)
            records = [record for block in blocks for record in block["changes"]]
            summary = f"blocks={len(blocks)}, records={len(records)}"
            if record_type is not None:
                matching = sum(1 for record in records if record["type"] == record_type)
                summary += f", {record_type.name}={matching}"
            if problems:
                broken += 1
                print(f"[FAIL] {character_id}: {'; '.join(problems)}")
            else:
                print(f"[OK] {character_id}: {summary}")
    finally:
        if db is not None:
            db.close()

    print(f"[SUMMARY] verified={len(character_ids)}, broken={broken}")
    return 0 if broken == 0 else 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
