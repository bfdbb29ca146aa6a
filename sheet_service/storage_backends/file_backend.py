import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional

from ..config import Settings
from .interfaces import BlockExistsError, CharacterStore, HistoryStore, StorageBackend, StoreError


def _read_json(path: Path) -> Dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StoreError(f"Corrupt document at {path}: {exc}") from exc


def _write_json(path: Path, payload: Dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, suffix=".tmp", delete=False
        ) as handle:
            json.dump(payload, handle, indent=2)
            temp_name = handle.name
        os.replace(temp_name, path)
    except OSError as exc:
        raise StoreError(f"Failed to write {path}: {exc}") from exc


class FileCharacterStore(CharacterStore):
    def __init__(self, root: Path):
        self.root = root

    def _path(self, character_id: str) -> Path:
        return self.root / f"{character_id}.json"

    def get_character(self, user_id: str, character_id: str) -> Optional[Dict]:
        path = self._path(character_id)
        if not path.exists():
            return None
        item = _read_json(path)
        if item.get("userId") != user_id:
            return None
        return item

    def put_character(self, user_id: str, character_id: str, item: Dict) -> None:
        _write_json(self._path(character_id), {**item, "userId": user_id, "characterId": character_id})

    def list_characters(self, user_id: str) -> List[Dict]:
        if not self.root.exists():
            return []
        items = []
        for path in sorted(self.root.glob("*.json")):
            item = _read_json(path)
            if item.get("userId") == user_id:
                items.append(item)
        return items

    def delete_character(self, user_id: str, character_id: str) -> bool:
        if self.get_character(user_id, character_id) is None:
            return False
        self._path(character_id).unlink(missing_ok=True)
        return True


class FileHistoryStore(HistoryStore):
    """One JSON document per block under ``history/<characterId>/<blockNumber>.json``."""

    def __init__(self, root: Path):
        self.root = root
        self._lock = threading.Lock()

    def _dir(self, character_id: str) -> Path:
        return self.root / character_id

    def _path(self, character_id: str, block_number: int) -> Path:
        return self._dir(character_id) / f"{block_number:06d}.json"

    def query_blocks(self, character_id: str, descending: bool = True, limit: Optional[int] = None) -> List[Dict]:
        directory = self._dir(character_id)
        if not directory.exists():
            return []
        paths = sorted(directory.glob("*.json"), reverse=descending)
        if limit is not None:
            paths = paths[:limit]
        return [_read_json(path) for path in paths]

    def get_block(self, character_id: str, block_number: int) -> Optional[Dict]:
        path = self._path(character_id, block_number)
        if not path.exists():
            return None
        return _read_json(path)

    def create_block(self, block: Dict) -> None:
        path = self._path(block["characterId"], block["blockNumber"])
        with self._lock:
            if path.exists():
                raise BlockExistsError(
                    f"Block {block['blockNumber']} already exists for character {block['characterId']}"
                )
            _write_json(path, block)

    def append_record(self, character_id: str, block_number: int, record: Dict, expected_count: int) -> bool:
        path = self._path(character_id, block_number)
        with self._lock:
            if not path.exists():
                raise StoreError(f"Block {block_number} not found for character {character_id}")
            block = _read_json(path)
            if len(block["changes"]) != expected_count:
                return False
            if any(existing.get("id") == record["id"] for existing in block["changes"]):
                return False
            block["changes"].append(record)
            _write_json(path, block)
        return True

    def set_record_comment(self, character_id: str, block_number: int, record_index: int, comment: str) -> None:
        path = self._path(character_id, block_number)
        with self._lock:
            if not path.exists():
                raise StoreError(f"Block {block_number} not found for character {character_id}")
            block = _read_json(path)
            block["changes"][record_index]["comment"] = comment
            _write_json(path, block)

    def delete_blocks(self, character_id: str) -> int:
        directory = self._dir(character_id)
        if not directory.exists():
            return 0
        deleted = 0
        with self._lock:
            for path in directory.glob("*.json"):
                path.unlink()
                deleted += 1
            directory.rmdir()
        return deleted


def build_file_backend(settings: Settings) -> StorageBackend:
    return StorageBackend(
        characters=FileCharacterStore(settings.characters_path),
        history=FileHistoryStore(settings.history_path),
    )
