"""reward_persist.tables

Idempotent provisioning of destination tables.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import psycopg

from reward_persist.shared import ProvisioningError

log = logging.getLogger(__name__)


def ensure_tables(conn: psycopg.Connection, label: str, ddl: Sequence[str]) -> None:
    """Run every CREATE TABLE IF NOT EXISTS statement in ddl and commit.

    Provisioning always commits, including on dry runs, so later batches
    can be rolled back without losing the tables.

    Raises:
        ProvisioningError: If any statement fails; nothing is committed.
    """
    try:
        for statement in ddl:
            conn.execute(statement)
    except psycopg.Error as exc:
        conn.rollback()
        raise ProvisioningError(f"could not provision {label} tables: {exc}") from exc
    conn.commit()
    log.info("provisioned %d %s tables", len(ddl), label)
