import json
import os
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import Settings
from .interfaces import BlockExistsError, CharacterStore, HistoryStore, StorageBackend, StoreError


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


def _resolve_db_path(settings: Settings) -> Path:
    raw = os.getenv("DATABASE_URL")
    candidate = getattr(settings, "database_url", None)
    if raw is None and candidate:
        raw = candidate
    if raw:
        if raw.startswith("sqlite:///"):
            raw = raw.replace("sqlite:///", "", 1)
        elif raw.startswith("file:"):
            raw = raw[5:]
        path = Path(raw)
    else:
        root = settings.data_root or settings.repo_root
        path = root / "sheets.sqlite"
    if not path.is_absolute():
        root = settings.data_root or settings.repo_root
        path = root / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


class SQLiteDatabase:
    def __init__(self, path: Path):
        self.path = path
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.lock = threading.RLock()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS characters (
                character_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                character_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_characters_user ON characters(user_id);

            CREATE TABLE IF NOT EXISTS history_blocks (
                character_id TEXT NOT NULL,
                block_number INTEGER NOT NULL,
                block_id TEXT UNIQUE NOT NULL,
                previous_block_id TEXT,
                changes_json TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (character_id, block_number)
            );
            """
        )

    def close(self) -> None:
        self.conn.close()


def _row_to_block(row: sqlite3.Row) -> Dict:
    return {
        "characterId": row["character_id"],
        "blockNumber": row["block_number"],
        "blockId": row["block_id"],
        "previousBlockId": row["previous_block_id"],
        "changes": json.loads(row["changes_json"]),
    }


class SQLiteCharacterStore(CharacterStore):
    def __init__(self, db: SQLiteDatabase):
        self.db = db

    def get_character(self, user_id: str, character_id: str) -> Optional[Dict]:
        with self.db.lock:
            row = self.db.conn.execute(
                "SELECT character_json FROM characters WHERE character_id = ? AND user_id = ?",
                (character_id, user_id),
            ).fetchone()
        if not row:
            return None
        return json.loads(row["character_json"])

    def put_character(self, user_id: str, character_id: str, item: Dict) -> None:
        payload = {**item, "userId": user_id, "characterId": character_id}
        try:
            with self.db.lock, self.db.conn:
                self.db.conn.execute(
                    """
                    INSERT INTO characters (character_id, user_id, character_json, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(character_id) DO UPDATE SET
                        user_id = excluded.user_id,
                        character_json = excluded.character_json,
                        updated_at = excluded.updated_at
                    """,
                    (character_id, user_id, _json_dumps(payload), _now_iso()),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to save character {character_id}: {exc}") from exc

    def list_characters(self, user_id: str) -> List[Dict]:
        with self.db.lock:
            rows = self.db.conn.execute(
                "SELECT character_json FROM characters WHERE user_id = ? ORDER BY character_id",
                (user_id,),
            ).fetchall()
        return [json.loads(row["character_json"]) for row in rows]

    def delete_character(self, user_id: str, character_id: str) -> bool:
        with self.db.lock, self.db.conn:
            cur = self.db.conn.execute(
                "DELETE FROM characters WHERE character_id = ? AND user_id = ?", (character_id, user_id)
            )
        return cur.rowcount > 0


class SQLiteHistoryStore(HistoryStore):
    def __init__(self, db: SQLiteDatabase):
        self.db = db

    def query_blocks(self, character_id: str, descending: bool = True, limit: Optional[int] = None) -> List[Dict]:
        order = "DESC" if descending else "ASC"
        sql = f"SELECT * FROM history_blocks WHERE character_id = ? ORDER BY block_number {order}"
        params: List[Any] = [character_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self.db.lock:
            rows = self.db.conn.execute(sql, params).fetchall()
        return [_row_to_block(row) for row in rows]

    def get_block(self, character_id: str, block_number: int) -> Optional[Dict]:
        with self.db.lock:
            row = self.db.conn.execute(
                "SELECT * FROM history_blocks WHERE character_id = ? AND block_number = ?",
                (character_id, block_number),
            ).fetchone()
        return _row_to_block(row) if row else None

    def create_block(self, block: Dict) -> None:
        try:
            with self.db.lock, self.db.conn:
                self.db.conn.execute(
                    """
                    INSERT INTO history_blocks
                        (character_id, block_number, block_id, previous_block_id, changes_json, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        block["characterId"],
                        block["blockNumber"],
                        block["blockId"],
                        block.get("previousBlockId"),
                        _json_dumps(block.get("changes", [])),
                        _now_iso(),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise BlockExistsError(
                f"Block {block['blockNumber']} already exists for character {block['characterId']}"
            ) from exc
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to create block: {exc}") from exc

    def _load_changes(self, character_id: str, block_number: int) -> List[Dict]:
        row = self.db.conn.execute(
            "SELECT changes_json FROM history_blocks WHERE character_id = ? AND block_number = ?",
            (character_id, block_number),
        ).fetchone()
        if not row:
            raise StoreError(f"Block {block_number} not found for character {character_id}")
        return json.loads(row["changes_json"])

    def _store_changes(self, character_id: str, block_number: int, changes: List[Dict]) -> None:
        self.db.conn.execute(
            """
            UPDATE history_blocks SET changes_json = ?, updated_at = ?
            WHERE character_id = ? AND block_number = ?
            """,
            (_json_dumps(changes), _now_iso(), character_id, block_number),
        )

    def append_record(self, character_id: str, block_number: int, record: Dict, expected_count: int) -> bool:
        try:
            with self.db.lock, self.db.conn:
                changes = self._load_changes(character_id, block_number)
                if len(changes) != expected_count:
                    return False
                if any(existing.get("id") == record["id"] for existing in changes):
                    return False
                changes.append(record)
                self._store_changes(character_id, block_number, changes)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to append record: {exc}") from exc
        return True

    def set_record_comment(self, character_id: str, block_number: int, record_index: int, comment: str) -> None:
        try:
            with self.db.lock, self.db.conn:
                changes = self._load_changes(character_id, block_number)
                changes[record_index]["comment"] = comment
                self._store_changes(character_id, block_number, changes)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to update record comment: {exc}") from exc

    def delete_blocks(self, character_id: str) -> int:
        with self.db.lock, self.db.conn:
            cur = self.db.conn.execute("DELETE FROM history_blocks WHERE character_id = ?", (character_id,))
        return cur.rowcount


def build_sqlite_backend(settings: Settings, db_path: Optional[Path] = None) -> StorageBackend:
    path = db_path or _resolve_db_path(settings)
    db = SQLiteDatabase(path)
    return StorageBackend(
        characters=SQLiteCharacterStore(db),
        history=SQLiteHistoryStore(db),
        closer=db.close,
    )


__all__ = ["SQLiteDatabase", "build_sqlite_backend", "_resolve_db_path"]
