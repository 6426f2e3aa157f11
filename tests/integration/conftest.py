"""Integration test fixtures.

Provides an ephemeral PostgreSQL database via pytest-postgresql. Destination
tables are not pre-created: each test provisions what it needs through the
file type handlers, the same way an import run does.
"""

from __future__ import annotations

import psycopg
import pytest
from pytest_postgresql import factories

from reward_persist.file_types import FileType, handler_for

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return (conn, dsn) for a fresh database; conn is not in autocommit mode."""
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=False)
    try:
        yield conn, dsn
    finally:
        conn.close()


@pytest.fixture
def mobile_conn(db_conn):
    """db_conn with the mobile reward share tables provisioned."""
    conn, _ = db_conn
    handler_for(FileType.MOBILE_REWARD_SHARE).ensure_tables(conn)
    return conn
