import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from csv_ingest.config.settings import Settings
from csv_ingest.database.connection import apply_schema, close_pool, get_connection, init_pool
from csv_ingest.database.repositories.file_repository import FileRepository
from csv_ingest.database.repositories.job_repository import JobRepository


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "csv_ingest_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a scratch database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def owner_id(integration_pool: None) -> Generator[str, None, None]:
    """A fresh owner per test; every row it owns is removed afterwards."""
    owner = f"it-{uuid.uuid4()}"
    yield owner
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM processing_jobs WHERE owner_id = %s", (owner,))
            cur.execute(
                "DELETE FROM files WHERE owner_id = %s AND parent_id IS NOT NULL", (owner,)
            )
            cur.execute("DELETE FROM files WHERE owner_id = %s", (owner,))
        conn.commit()


@pytest.fixture
def file_repo(integration_pool: None) -> FileRepository:
    return FileRepository()


@pytest.fixture
def job_repo(integration_pool: None) -> JobRepository:
    return JobRepository()
