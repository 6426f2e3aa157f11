"""reward_persist.importer

Per-file import pipeline.

run_import() provisions the destination tables for one file type, lists the
files in [after, before) and then processes them strictly in timestamp order,
one file fully before the next:

  open → decode (lazy) → route into the file's accumulators → write → commit

Failure policy:
  - ProvisioningError is fatal to the run before any file is touched.
  - Any error while importing a file aborts the run as FileImportError
    naming the file. Nothing from that file's failing transaction is kept;
    files committed earlier stay committed. Rows and statements from batches
    of the failing file that committed before the failure are still counted.
  - dry_run executes every statement and rolls each batch back. Table
    provisioning still commits.
"""

from __future__ import annotations

import logging
from datetime import datetime

import psycopg

from reward_persist.file_store import FileInfo
from reward_persist.file_types import FileType, handler_for
from reward_persist.settings import ImportSettings
from reward_persist.shared import FileImportError, RunCounters

log = logging.getLogger(__name__)


def import_file(
    conn: psycopg.Connection,
    store,
    handler,
    info: FileInfo,
    *,
    settings: ImportSettings,
    counters: RunCounters,
    dry_run: bool = False,
) -> dict[str, int]:
    """Decode, route and write one file; return rows written per table."""
    batch = handler.new_batch()
    decoded = 0
    dropped = 0
    with store.open(info) as stream:
        for record in handler.decode(stream, source=info.key, compressed=info.compressed):
            decoded += 1
            if batch.add(record) is None:
                dropped += 1

    try:
        batch.write(conn, settings.max_bind_params, dry_run)
    finally:
        # batches committed before a failure are still reported
        counters.statements_executed += batch.statements
        counters.add_rows(batch.written)
    written = batch.written

    counters.records_decoded += decoded
    counters.records_dropped += dropped
    counters.files_processed += 1
    if dropped:
        counters.warnings.append(f"{info.key}: dropped {dropped} records with no reward variant")
    log.info(
        "imported %s: decoded=%d dropped=%d rows=%s dry_run=%s",
        info.key, decoded, dropped, written, dry_run,
    )
    return written


def run_import(
    conn: psycopg.Connection,
    store,
    file_type: FileType | str,
    *,
    after: datetime | None = None,
    before: datetime | None = None,
    settings: ImportSettings | None = None,
    counters: RunCounters | None = None,
    run_id: str = "",
    dry_run: bool = False,
) -> RunCounters:
    """Import every matching file of file_type from store, oldest first.

    Raises:
        ProvisioningError: If the destination tables cannot be created.
        FileImportError: On the first file that fails; earlier files stay committed.
    """
    settings = settings or ImportSettings()
    counters = counters if counters is not None else RunCounters()
    handler = handler_for(file_type)

    handler.ensure_tables(conn)

    files = store.list_all(handler.prefix, after, before)
    counters.files_listed += len(files)
    log.info("[%s] %d %s files to import", run_id, len(files), handler.prefix)

    for info in files:
        try:
            import_file(
                conn, store, handler, info,
                settings=settings, counters=counters, dry_run=dry_run,
            )
        except Exception as exc:
            # Writers roll back their own batches; this clears any
            # transaction opened before the failure.
            conn.rollback()
            log.error("[%s] import of %s failed: %s", run_id, info.key, exc)
            raise FileImportError(info.key, exc) from exc

    return counters


def run_clean(
    conn: psycopg.Connection,
    file_type: FileType | str,
    *,
    run_id: str = "",
    dry_run: bool = False,
) -> None:
    """Clean mode placeholder: there is nothing to clean yet."""
    handler = handler_for(file_type)
    log.info(
        "[%s] clean requested for %s (tables %s, dry_run=%s); nothing to do",
        run_id, handler.prefix, ", ".join(handler.table_names), dry_run,
    )
