"""reward_persist.bulk_writer

Chunked, set-based INSERTs from a ColumnarBatch.

A batch is split into chunks of ``max_bind_params // width`` rows and each
chunk becomes one multi-row ``INSERT ... VALUES (...), (...)`` statement.
Chunks run sequentially, in batch order.

Transaction handling:
  - insert_chunks / insert_chunks_returning never commit or roll back; the
    caller owns the transaction.
  - write_batch owns one transaction per batch: every chunk commits
    together or none does.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterator

import psycopg
from psycopg import sql

from reward_persist.columnar import ColumnarBatch, TableSpec
from reward_persist.settings import MAX_BIND_PARAMS_LIMIT
from reward_persist.shared import ChunkWriteError, KeyAssociationError

log = logging.getLogger(__name__)

DEFAULT_MAX_BIND_PARAMS = MAX_BIND_PARAMS_LIMIT


def chunk_size_for(num_columns: int, max_bind_params: int = DEFAULT_MAX_BIND_PARAMS) -> int:
    """Rows per statement so that rows * num_columns <= max_bind_params."""
    if num_columns <= 0:
        raise ValueError("num_columns must be positive")
    size = max_bind_params // num_columns
    if size < 1:
        raise ValueError(
            f"max_bind_params={max_bind_params} cannot fit one row of {num_columns} columns"
        )
    return size


def chunk_bounds(total: int, chunk_size: int) -> Iterator[tuple[int, int]]:
    """Yield half-open [start, end) ranges covering range(total) in order."""
    for start in range(0, total, chunk_size):
        yield start, min(start + chunk_size, total)


@functools.lru_cache(maxsize=64)
def _insert_statement(table: TableSpec, num_rows: int, returning: str | None) -> sql.Composed:
    row = sql.SQL("({})").format(sql.SQL(", ").join(sql.Placeholder() * table.width))
    statement = sql.SQL("INSERT INTO {} ({}) VALUES {}").format(
        sql.Identifier(table.name),
        sql.SQL(", ").join(sql.Identifier(c) for c in table.columns),
        sql.SQL(", ").join([row] * num_rows),
    )
    if returning is not None:
        statement += sql.SQL(" RETURNING {}").format(sql.Identifier(returning))
    return statement


def _params(batch: ColumnarBatch, start: int, end: int) -> list:
    return [value for row in batch.rows(start, end) for value in row]


def insert_chunks(
    conn: psycopg.Connection,
    batch: ColumnarBatch,
    max_bind_params: int = DEFAULT_MAX_BIND_PARAMS,
) -> int:
    """Insert every row of batch; return the number of statements executed.

    Raises:
        ChunkWriteError: On the first failing chunk. Earlier chunks are not
            undone here.
    """
    table = batch.table
    size = chunk_size_for(table.width, max_bind_params)
    statements = 0
    for index, (start, end) in enumerate(chunk_bounds(len(batch), size)):
        try:
            conn.execute(_insert_statement(table, end - start, None), _params(batch, start, end))
        except psycopg.Error as exc:
            raise ChunkWriteError(table.name, index, start, end, exc) from exc
        statements += 1
    log.debug("%s: %d rows in %d statements", table.name, len(batch), statements)
    return statements


def insert_chunks_returning(
    conn: psycopg.Connection,
    batch: ColumnarBatch,
    returning: str,
    max_bind_params: int = DEFAULT_MAX_BIND_PARAMS,
) -> list[int]:
    """Insert every row of batch and return one generated value per row, in row order.

    RETURNING does not promise any row order. The returned column must come
    from a sequence (serial / identity), which hands out ascending values in
    the order the VALUES rows are processed, so each chunk's values are
    sorted before being paired with its rows. The count is checked so a short
    or long result can never be paired with the wrong source rows.

    Raises:
        ChunkWriteError: If a chunk statement fails.
        KeyAssociationError: If a chunk returns a different number of rows
            than it submitted.
    """
    table = batch.table
    size = chunk_size_for(table.width, max_bind_params)
    generated: list[int] = []
    for index, (start, end) in enumerate(chunk_bounds(len(batch), size)):
        try:
            cur = conn.execute(
                _insert_statement(table, end - start, returning),
                _params(batch, start, end),
            )
            returned = cur.fetchall()
        except psycopg.Error as exc:
            raise ChunkWriteError(table.name, index, start, end, exc) from exc
        if len(returned) != end - start:
            raise KeyAssociationError(table.name, end - start, len(returned))
        generated.extend(sorted(row[0] for row in returned))
    return generated


def write_batch(
    conn: psycopg.Connection,
    batch: ColumnarBatch,
    max_bind_params: int = DEFAULT_MAX_BIND_PARAMS,
    dry_run: bool = False,
) -> int:
    """Insert batch in its own transaction; return statements executed.

    Commits only after every chunk succeeds. Any failure rolls the whole
    batch back before re-raising. dry_run rolls back instead of committing.
    """
    if not batch:
        return 0
    try:
        statements = insert_chunks(conn, batch, max_bind_params)
    except Exception:
        conn.rollback()
        raise
    if dry_run:
        conn.rollback()
    else:
        conn.commit()
    return statements
