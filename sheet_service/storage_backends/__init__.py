from .interfaces import BlockExistsError, CharacterStore, HistoryStore, StorageBackend, StoreError

__all__ = [
    "BlockExistsError",
    "CharacterStore",
    "HistoryStore",
    "StorageBackend",
    "StoreError",
]
