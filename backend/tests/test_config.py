"""Tests for settings loading, environment overrides and path resolution."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from roomhub.config import (
    AppConfig,
    DatabaseSettings,
    database_path_from_url,
    get_config,
    load_config,
    reset_config,
    set_config,
)

ENV_VARS = ("ROOMHUB_HOST", "PORT", "DATABASE_URL", "ROOMHUB_ENV")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    reset_config()


def _write_settings(directory: Path, text: str) -> Path:
    settings_file = directory / "roomhub.settings.yaml"
    settings_file.write_text(text, encoding="utf-8")
    return settings_file


def test_defaults_without_files(tmp_path):
    cfg = load_config(settings_path=tmp_path / "missing.yaml")

    assert cfg.server.host == "0.0.0.0"
    assert cfg.server.port == 3005
    assert cfg.server.mode == "dev"
    assert cfg.database.pool_size == 10
    assert cfg.rooms.history_limit == 50
    assert cfg.rooms.companion_suffix == "-chat"
    assert Path(cfg.database.path) == tmp_path.resolve() / "roomhub.duckdb"


def test_yaml_values_are_loaded(tmp_path):
    settings_file = _write_settings(
        tmp_path,
        "server:\n"
        "  port: 4000\n"
        "  mode: prod\n"
        "rooms:\n"
        "  history_limit: 20\n"
        "  max_name_length: 64\n"
        "database:\n"
        "  pool_size: 3\n"
        "  query_timeout: 1.5\n",
    )

    cfg = load_config(settings_path=settings_file)
    assert cfg.server.port == 4000
    assert cfg.server.mode == "prod"
    assert cfg.rooms.history_limit == 20
    assert cfg.rooms.max_name_length == 64
    assert cfg.database.pool_size == 3
    assert cfg.database.query_timeout == 1.5


def test_relative_database_path_resolves_from_settings_dir(tmp_path):
    settings_file = _write_settings(tmp_path, "database:\n  path: data/rooms.duckdb\n")

    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.database.path) == tmp_path.resolve() / "data" / "rooms.duckdb"


def test_absolute_database_path_is_kept(tmp_path):
    absolute = tmp_path / "elsewhere" / "rooms.duckdb"
    settings_file = _write_settings(tmp_path, f"database:\n  path: {absolute}\n")

    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.database.path) == absolute


def test_memory_database_is_kept(tmp_path):
    settings_file = _write_settings(tmp_path, 'database:\n  path: ":memory:"\n')

    cfg = load_config(settings_path=settings_file)
    assert cfg.database.path == ":memory:"


def test_secrets_url_overrides_path(tmp_path):
    settings_file = _write_settings(tmp_path, "database:\n  path: ignored.duckdb\n")
    (tmp_path / "roomhub.secrets.yaml").write_text(
        "database:\n  url: duckdb:///secret.duckdb\n", encoding="utf-8"
    )

    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.database.path) == tmp_path.resolve() / "secret.duckdb"


def test_environment_overrides(tmp_path, monkeypatch):
    settings_file = _write_settings(tmp_path, "server:\n  host: 127.0.0.1\n  port: 4000\n")
    monkeypatch.setenv("ROOMHUB_HOST", "10.0.0.5")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("ROOMHUB_ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "duckdb:///:memory:")

    cfg = load_config(settings_path=settings_file)
    assert cfg.server.host == "10.0.0.5"
    assert cfg.server.port == 8080
    assert cfg.server.mode == "prod"
    assert cfg.database.path == ":memory:"


def test_non_production_env_means_dev(tmp_path, monkeypatch):
    settings_file = _write_settings(tmp_path, "server:\n  mode: prod\n")
    monkeypatch.setenv("ROOMHUB_ENV", "staging")

    assert load_config(settings_path=settings_file).server.mode == "dev"


@pytest.mark.parametrize("url,expected", [
    ("duckdb:///rooms.duckdb", "rooms.duckdb"),
    ("duckdb:///", ":memory:"),
    ("/var/lib/rooms.duckdb", "/var/lib/rooms.duckdb"),
])
def test_database_path_from_url(url, expected):
    assert database_path_from_url(url) == expected


def test_log_level_follows_mode():
    assert AppConfig().log_level == "DEBUG"

    prod = AppConfig(server={"mode": "prod"})
    assert prod.log_level == "INFO"

    explicit = AppConfig(server={"mode": "prod"}, logging={"level": "warning"})
    assert explicit.log_level == "WARNING"


def test_invalid_pool_size_rejected():
    with pytest.raises(ValidationError):
        DatabaseSettings(pool_size=0)


def test_invalid_mode_rejected(tmp_path):
    settings_file = _write_settings(tmp_path, "server:\n  mode: staging\n")
    with pytest.raises(ValidationError):
        load_config(settings_path=settings_file)


def test_set_and_get_config():
    cfg = AppConfig(database=DatabaseSettings(path=":memory:"))
    set_config(cfg)
    assert get_config() is cfg
