"""Parley application configuration.

Loads settings from a single YAML file:
  * parley.settings.yaml: server, storage, chat and logging settings

The file path can be overridden with the ``PARLEY_SETTINGS`` environment
variable. A missing file is not an error; every section has defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("parley.settings.yaml")
SETTINGS_ENV_VAR = "PARLEY_SETTINGS"

MEMORY_DB = ":memory:"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class StorageSettings(BaseModel):
    db_path: str = "parley.duckdb"


class ChatSettings(BaseModel):
    broadcast_room:     str = "presence"
    max_message_length: int = Field(default=5000, gt=0)

    @field_validator("broadcast_room")
    @classmethod
    def _no_pair_separator(cls, value: str) -> str:
        # Pairwise room keys always contain "-"; keep the namespaces apart.
        value = value.strip()
        if not value or "-" in value:
            raise ValueError("broadcast_room must be non-empty and must not contain '-'")
        return value


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_db_path(db_path: str, settings_dir: Path) -> str:
    if db_path == MEMORY_DB:
        return db_path
    path = Path(db_path)
    if path.is_absolute():
        return str(path)
    return str(settings_dir / path)


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings from YAML into an *AppConfig*.

    Relative ``storage.db_path`` values are resolved against the directory
    holding the settings file.
    """
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_path = Path(settings_path)

    config = AppConfig(**_load_yaml(settings_path))
    config.storage.db_path = _resolve_db_path(
        config.storage.db_path, settings_path.resolve().parent
    )
    logger.info(
        "Settings loaded (server=%s:%s, db=%s, broadcast_room=%s)",
        config.server.host,
        config.server.port,
        config.storage.db_path,
        config.chat.broadcast_room,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
