import pytest
from psycopg.conninfo import conninfo_to_dict

from csv_ingest.config.settings import Settings
from csv_ingest.database.connection import SCHEMA_PATH, build_conninfo, get_connection


class TestBuildConninfo:
    def test_uses_database_settings(self) -> None:
        settings = Settings(
            _env_file=None,
            db_host="db.internal",
            db_port=6543,
            db_database="ingest",
            db_username="svc",
            db_password="p@ss word",
            db_connect_timeout_seconds=3,
        )

        params = conninfo_to_dict(build_conninfo(settings))

        assert params == {
            "host": "db.internal",
            "port": "6543",
            "dbname": "ingest",
            "user": "svc",
            "password": "p@ss word",
            "connect_timeout": "3",
        }


class TestGetConnection:
    def test_requires_initialized_pool(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("csv_ingest.database.connection._pool", None)

        with pytest.raises(RuntimeError, match="not initialized"):
            with get_connection():
                pass


class TestSchema:
    def test_schema_ships_with_package(self) -> None:
        sql = SCHEMA_PATH.read_text(encoding="utf-8")

        assert "CREATE TABLE IF NOT EXISTS files" in sql
        assert "CREATE TABLE IF NOT EXISTS processing_jobs" in sql
        assert "WHERE parent_id IS NULL" in sql
