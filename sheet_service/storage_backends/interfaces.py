from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol


class StoreError(Exception):
    """A storage operation failed and may succeed when retried."""


class BlockExistsError(StoreError):
    """A history block with the requested number already exists."""


class CharacterStore(Protocol):
    def get_character(self, user_id: str, character_id: str) -> Optional[Dict]:
        ...

    def put_character(self, user_id: str, character_id: str, item: Dict) -> None:
        ...

    def list_characters(self, user_id: str) -> List[Dict]:
        ...

    def delete_character(self, user_id: str, character_id: str) -> bool:
        ...


class HistoryStore(Protocol):
    def query_blocks(self, character_id: str, descending: bool = True, limit: Optional[int] = None) -> List[Dict]:
        ...

    def get_block(self, character_id: str, block_number: int) -> Optional[Dict]:
        ...

    def create_block(self, block: Dict) -> None:
        ...

    def append_record(self, character_id: str, block_number: int, record: Dict, expected_count: int) -> bool:
        """Append unless the block no longer holds ``expected_count`` records or already has the id."""
        ...

    def set_record_comment(self, character_id: str, block_number: int, record_index: int, comment: str) -> None:
        ...

    def delete_blocks(self, character_id: str) -> int:
        ...


@dataclass(frozen=True)
class StorageBackend:
    characters: CharacterStore
    history: HistoryStore
    closer: Optional[Callable[[], None]] = None

    def close(self) -> None:
        if self.closer is not None:
            self.closer()
