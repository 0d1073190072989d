"""Roomhub application configuration.

Loads settings from two YAML files:
  * roomhub.settings.yaml: non-secret configuration
  * roomhub.secrets.yaml: secrets (never committed)

A few environment variables override the files:
  * ROOMHUB_HOST, PORT: listener
  * DATABASE_URL: store connection string (``duckdb:///path`` or a path)
  * ROOMHUB_ENV: "production" selects prod mode, anything else dev
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("roomhub.settings.yaml")
SECRETS_FILE  = Path("roomhub.secrets.yaml")

DUCKDB_URL_PREFIX = "duckdb:///"
MEMORY_DB = ":memory:"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def database_path_from_url(url: str) -> str:
    """Turn ``duckdb:///path`` (or a bare path) into a DuckDB path."""
    if url.startswith(DUCKDB_URL_PREFIX):
        return url[len(DUCKDB_URL_PREFIX):] or MEMORY_DB
    return url


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class DatabaseSecrets(BaseModel):
    url: Optional[str] = None


class Secrets(BaseModel):
    database: DatabaseSecrets = Field(default_factory=DatabaseSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str                     = "0.0.0.0"
    port:            int                     = 3005
    mode:            Literal["dev", "prod"]  = "dev"
    allowed_origins: List[str]               = Field(default_factory=lambda: ["*"])


class DatabaseSettings(BaseModel):
    path:          str   = "roomhub.duckdb"
    pool_size:     int   = 10
    pool_timeout:  float = 30.0
    query_timeout: float = 5.0

    @field_validator("pool_size")
    @classmethod
    def _positive_pool(cls, value: int) -> int:
        if value < 1:
            raise ValueError("pool_size must be at least 1")
        return value


class RoomSettings(BaseModel):
    max_name_length:  int = 128
    history_limit:    int = 50
    companion_suffix: str = "-chat"


class LoggingSettings(BaseModel):
    level: Optional[str] = None


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rooms:    RoomSettings     = Field(default_factory=RoomSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)

    @property
    def log_level(self) -> str:
        """Configured level, or DEBUG in dev mode and INFO in prod."""
        if self.logging.level:
            return self.logging.level.upper()
        return "DEBUG" if self.server.mode == "dev" else "INFO"


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _apply_env_overrides(data: Dict[str, Any]) -> None:
    server = data.setdefault("server", {})
    if os.environ.get("ROOMHUB_HOST"):
        server["host"] = os.environ["ROOMHUB_HOST"]
    if os.environ.get("PORT"):
        server["port"] = os.environ["PORT"]
    if os.environ.get("ROOMHUB_ENV"):
        server["mode"] = "prod" if os.environ["ROOMHUB_ENV"] == "production" else "dev"

    if os.environ.get("DATABASE_URL"):
        secrets = data.setdefault("secrets", {})
        secrets.setdefault("database", {})["url"] = os.environ["DATABASE_URL"]


def _resolve_database_path(config: AppConfig, base_dir: Path) -> None:
    if config.secrets.database.url:
        config.database.path = database_path_from_url(config.secrets.database.url)
    path = config.database.path
    if path != MEMORY_DB and not Path(path).is_absolute():
        config.database.path = str(base_dir / path)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object.

    Relative database paths resolve against the settings file's directory.
    """
    settings_path = Path(settings_path) if settings_path else SETTINGS_FILE
    secrets_path = Path(secrets_path) if secrets_path else settings_path.parent / SECRETS_FILE.name

    settings_data = _load_yaml(settings_path)
    settings_data["secrets"] = _load_yaml(secrets_path)
    _apply_env_overrides(settings_data)

    config = AppConfig(**settings_data)
    _resolve_database_path(config, settings_path.resolve().parent)
    logger.info(
        "Settings loaded (server=%s:%s, mode=%s, database=%s)",
        config.server.host,
        config.server.port,
        config.server.mode,
        config.database.path,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
