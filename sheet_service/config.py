from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime configuration for the character sheet service."""

    repo_root: Path = Path(__file__).resolve().parent.parent
    data_dir: str = "data"
    data_root: Optional[Path] = None
    database_url: Optional[str] = None

    # History ledger
    history_block_capacity: int = 100
    history_append_attempts: int = 3
    history_append_backoff_seconds: float = 0.05

    # Bearer tokens are decoded without verification unless a secret is set
    jwt_secret: Optional[str] = None
    jwt_algorithms: List[str] = ["HS256"]

    host: str = "127.0.0.1"
    port: int = 8000

    log_level: str = "INFO"
    log_json: bool = False
    cors_allow_origins: List[str] = ["*"]

    class Config:
        env_prefix = "SHEET_SERVICE_"

    @property
    def data_path(self) -> Path:
        return (self.data_root or self.repo_root) / self.data_dir

    @property
    def characters_path(self) -> Path:
        return self.data_path / "characters"

    @property
    def history_path(self) -> Path:
        return self.data_path / "history"

    @property
    def verifies_tokens(self) -> bool:
        return self.jwt_secret is not None and len(self.jwt_secret) > 0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
