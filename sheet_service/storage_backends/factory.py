import os

from ..config import Settings
from .file_backend import build_file_backend
from .interfaces import StorageBackend
from .sqlite_backend import _resolve_db_path, build_sqlite_backend


def build_storage_backend(settings: Settings) -> StorageBackend:
    backend_name = os.getenv("STORAGE_BACKEND", "file").lower()
    if backend_name == "file":
        return build_file_backend(settings)
    if backend_name == "sqlite":
        return build_sqlite_backend(settings, db_path=_resolve_db_path(settings))
    raise ValueError(f"Unsupported storage backend: {backend_name}")
