"""Location of the local catalog database."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import env_flag, optional_env_var

APP_DIR_NAME: Final[str] = "propcatalog"
DEFAULT_DB_FILENAME: Final[str] = "catalog.db"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    @property
    def database_path(self) -> Path:
        return self.data_dir.expanduser().resolve() / self.database_filename

    def database_uri(self, *, create_dir: bool = True) -> str:
        path = self.database_path
        if create_dir:
            path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite+pysqlite:///{path}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str
    echo: bool = False


def _default_data_dir() -> Path:
    base = os.getenv("XDG_DATA_HOME")
    base_path = Path(base) if base else Path.home() / ".local" / "share"
    return base_path / APP_DIR_NAME


def get_storage_config() -> StorageConfig:
    env_dir = optional_env_var("PROPCATALOG_DATA_DIR")
    return StorageConfig(data_dir=Path(env_dir) if env_dir else _default_data_dir())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """``PROPCATALOG_DATABASE_URI`` wins; otherwise a SQLite file in the data dir."""

    echo = env_flag("PROPCATALOG_DATABASE_ECHO")
    env_uri = optional_env_var("PROPCATALOG_DATABASE_URI")
    if env_uri:
        return DatabaseConfig(uri=env_uri, echo=echo)
    storage_config = storage or get_storage_config()
    return DatabaseConfig(uri=storage_config.database_uri(), echo=echo)
