"""
Runtime settings for the book store.

Values are read from ``BOOKDB_*`` environment variables (or a local
``.env`` file) and fall back to the defaults below. The defaults load
the bundled sample dataset into the ``library.books`` collection.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_FILE = Path(__file__).resolve().parent / "data" / "sample_books.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BOOKDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    database_name: str = Field(default="library")
    default_collection: str = Field(default="books")
    seed_file: Path = Field(default=DATA_FILE)
    seed_on_startup: bool = Field(default=True)
    # Upper bound for ``limit`` on the HTTP find endpoint.
    max_find_limit: int = Field(default=1000, ge=1)
    log_level: str = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    return Settings()
