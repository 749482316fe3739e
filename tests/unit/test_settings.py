from __future__ import annotations

import os

from evaltrack.infrastructure.stores.factory import build_storage
from evaltrack.infrastructure.stores.json_storage import JsonFileStorage
from evaltrack.infrastructure.stores.sql_storage import SqlAlchemyStorage
from evaltrack.infrastructure.stores.sqlalchemy_db import (
    driver_connect_args,
    get_db_url,
    normalize_db_url,
)
from evaltrack.settings import Settings


def test_defaults_without_env(monkeypatch):
    for name in (
        "EVALTRACK_DB_URL",
        "DATABASE_URL",
        "EVALTRACK_DATA_DIR",
        "EVALTRACK_STORE_TIMEOUT_SECONDS",
        "EVALTRACK_AUTO_CREATE_SCHEMA",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.db_url is None
    assert settings.data_dir == "data"
    assert settings.store_timeout_seconds == 15.0
    assert settings.auto_create_schema is True
    assert settings.artifacts_dir == os.path.join("data", "artifacts")


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("EVALTRACK_DB_URL", "postgres://u:p@db/eval")
    monkeypatch.setenv("EVALTRACK_DATA_DIR", "/srv/eval")
    monkeypatch.setenv("EVALTRACK_STORE_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("EVALTRACK_AUTO_CREATE_SCHEMA", "no")

    settings = Settings.from_env()

    assert settings.db_url == "postgresql://u:p@db/eval"
    assert settings.data_dir == "/srv/eval"
    assert settings.store_timeout_seconds == 2.5
    assert settings.auto_create_schema is False


def test_database_url_fallback(monkeypatch):
    monkeypatch.delenv("EVALTRACK_DB_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "sqlite:///x.db")
    assert get_db_url() == "sqlite:///x.db"
    assert normalize_db_url("  ") == ""


def test_backend_selection(tmp_path):
    json_backend = build_storage(Settings(data_dir=str(tmp_path / "data")))
    assert isinstance(json_backend, JsonFileStorage)
    assert json_backend.backend_name == "json"

    sql_backend = build_storage(
        Settings(db_url=f"sqlite:///{tmp_path / 'eval.db'}", data_dir=str(tmp_path))
    )
    try:
        assert isinstance(sql_backend, SqlAlchemyStorage)
        assert sql_backend.is_relational
    finally:
        sql_backend.close()


def test_driver_timeouts_follow_store_timeout():
    assert driver_connect_args("sqlite:///x.db", 2.5) == {"check_same_thread": False, "timeout": 2.5}
    assert driver_connect_args("postgresql://u@h/db", 2.5) == {
        "connect_timeout": 2,
        "options": "-c statement_timeout=2500",
    }
    assert driver_connect_args("postgresql://u@h/db") == {}
