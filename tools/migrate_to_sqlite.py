#!/usr/bin/env python
"""Import file-backed characters and their history into the SQLite backend."""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pydantic import ValidationError

from sheet_service.config import Settings
from sheet_service.history import HistoryLedger
from sheet_service.models import Character
from sheet_service.storage_backends.file_backend import FileHistoryStore
from sheet_service.storage_backends.interfaces import StoreError
from sheet_service.storage_backends.sqlite_backend import (
    SQLiteCharacterStore,
    SQLiteDatabase,
    SQLiteHistoryStore,
)


@dataclass
class ImportResult:
    character_id: str
    imported: bool = False
    skipped: bool = False
    reason: Optional[str] = None
    block_count: int = 0
    record_count: int = 0


def _normalize_db_path(raw: str, source_root: Path) -> Path:
    if raw.startswith("sqlite:///"):
        raw = raw.replace("sqlite:///", "", 1)
    path = Path(raw)
    if not path.is_absolute():
        path = source_root / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _load_character_files(characters_root: Path) -> List[Tuple[Path, Dict]]:
    items = []
    for path in sorted(characters_root.glob("*.json")):
        items.append((path, json.loads(path.read_text(encoding="utf-8"))))
    return items


def import_character(
    db: SQLiteDatabase,
    file_history: FileHistoryStore,
    item: Dict,
    overwrite: bool,
) -> ImportResult:
    try:
        character = Character.model_validate(item)
    except ValidationError as exc:
        return ImportResult(
            character_id=str(item.get("characterId")),
            reason=f"invalid character: {exc.error_count()} error(s)",
        )

    result = ImportResult(character_id=character.character_id)
    characters = SQLiteCharacterStore(db)
    history = SQLiteHistoryStore(db)

    if characters.get_character(character.user_id, character.character_id) is not None:
        if not overwrite:
            result.skipped = True
            result.reason = "already present (use --overwrite)"
            return result
        history.delete_blocks(character.character_id)
    elif history.query_blocks(character.character_id, limit=1):
        if not overwrite:
            result.reason = "history blocks present without a character (use --overwrite)"
            return result
        history.delete_blocks(character.character_id)

    try:
        for block in file_history.query_blocks(character.character_id, descending=False):
            history.create_block(block)
            result.block_count += 1
            result.record_count += len(block.get("changes", []))
    except StoreError as exc:
        history.delete_blocks(character.character_id)
        result.reason = f"history import failed: {exc}"
        return result
    characters.put_character(character.user_id, character.character_id, character.to_document())

    result.imported = True
    return result



def verify_character(
    db: SQLiteDatabase, settings: Settings, item: Dict, expected_blocks: int, expected_records: int
) -> Tuple[bool, List[str]]:
    errors: List[str] = []
    if SQLiteCharacterStore(db).get_character(item["userId"], item["characterId"]) is None:
        errors.append("character missing")

    history = SQLiteHistoryStore(db)
    blocks = history.query_blocks(item["characterId"], descending=False)
    if len(blocks) != expected_blocks:
        errors.append(f"block count mismatch (expected {expected_blocks}, got {len(blocks)})")
    record_count = sum(len(block["changes"]) for block in blocks)
    if record_count != expected_records:
        errors.append(f"record count mismatch (expected {expected_records}, got {record_count})")

    ledger = HistoryLedger(history, capacity=settings.history_block_capacity)
    errors.extend(ledger.verify_chain(item["characterId"]))
    return len(errors) == 0, errors


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Migrate file-backed characters and history into SQLite.")
    parser.add_argument("--source", required=True, help="Path to the repository root containing data/")
    parser.add_argument("--db", required=True, help="SQLite path or sqlite:/// URL")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite characters that already exist in SQLite")
    parser.add_argument("--characters", help="Comma-separated list of character ids to import (defaults to all found)")
    parser.add_argument("--dry-run", action="store_true", help="Show what would happen without writing to SQLite")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    source_root = Path(args.source).resolve()

    if not source_root.exists():
        print(f"[ERROR] Source path {source_root} does not exist", file=sys.stderr)
        return 1

    settings = Settings(repo_root=source_root, data_root=None)
    db_path = _normalize_db_path(args.db, source_root)
    print(f"[INFO] Target SQLite DB: {db_path}")
    print(f"[INFO] Source repo: {source_root}")

    if not settings.characters_path.exists():
        print(f"[ERROR] No characters directory under {settings.data_path}", file=sys.stderr)
        return 1

    items = [item for _, item in _load_character_files(settings.characters_path)]
    if args.characters:
        selected = {cid.strip() for cid in args.characters.split(",") if cid.strip()}
        items = [item for item in items if item.get("characterId") in selected]
    if not items:
        print("[WARN] No characters found to import")
        return 0

    if args.dry_run:
        ids = ", ".join(str(item.get("characterId")) for item in items)
        print(f"[DRY-RUN] Would import {len(items)} character(s): {ids}")
        return 0

    db = SQLiteDatabase(db_path)
    file_history = FileHistoryStore(settings.history_path)

    imported = 0
    skipped = 0
    failed = 0
    try:
        for item in items:
            result = import_character(db, file_history, item, args.overwrite)
            if result.skipped:
                skipped += 1
                print(f"[SKIP] {result.character_id}: {result.reason}")
                continue
            if not result.imported:
                failed += 1
                print(f"[FAIL] {result.character_id}: {result.reason or 'unknown error'}")
                continue

            ok, errors = verify_character(db, settings, item, result.block_count, result.record_count)
            if ok:
                imported += 1
                print(f"[OK] {result.character_id}: blocks={result.block_count}, records={result.record_count}")
            else:
                failed += 1
                print(f"[VERIFY-FAIL] {result.character_id}: {'; '.join(errors)}")
    finally:
        db.close()

    print(f"[SUMMARY] imported={imported}, skipped={skipped}, failed={failed}, total={len(items)}")
    return 0 if failed == 0 else 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
