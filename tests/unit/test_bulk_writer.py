"""Unit tests for chunked bulk inserts (reward_persist.bulk_writer).

Uses a mock connection; no database access required.
"""

from itertools import count
from unittest.mock import MagicMock

import psycopg
import pytest

from reward_persist.bulk_writer import (
    chunk_bounds,
    chunk_size_for,
    insert_chunks,
    insert_chunks_returning,
    write_batch,
)
from reward_persist.columnar import ColumnarBatch, TableSpec
from reward_persist.shared import ChunkWriteError, KeyAssociationError

TABLE = TableSpec("widgets", ("a", "b", "c", "d"))


def _batch(n: int) -> ColumnarBatch:
    batch = ColumnarBatch(TABLE)
    for i in range(n):
        batch.add(a=i, b=i, c=i, d=i)
    return batch


def _returning_conn(width: int = TABLE.width, short_by: int = 0) -> MagicMock:
    """Mock connection whose execute() returns one generated id per VALUES row."""
    ids = count(1)
    conn = MagicMock()

    def execute(statement, params):
        cur = MagicMock()
        rows = len(params) // width - short_by
        cur.fetchall.return_value = [(next(ids),) for _ in range(rows)]
        return cur

    conn.execute.side_effect = execute
    return conn


# ---------------------------------------------------------------------------
# Chunk sizing
# ---------------------------------------------------------------------------

class TestChunkSizing:
    def test_default_limit(self):
        assert chunk_size_for(16) == 65535 // 16

    def test_custom_limit(self):
        assert chunk_size_for(4, 10) == 2

    def test_row_too_wide(self):
        with pytest.raises(ValueError):
            chunk_size_for(17, 16)

    def test_bounds_cover_total_in_order(self):
        assert list(chunk_bounds(7, 3)) == [(0, 3), (3, 6), (6, 7)]

    def test_bounds_empty(self):
        assert list(chunk_bounds(0, 3)) == []


# ---------------------------------------------------------------------------
# insert_chunks
# ---------------------------------------------------------------------------

class TestInsertChunks:
    def test_exactly_chunk_size_is_one_statement(self):
        conn = MagicMock()
        assert insert_chunks(conn, _batch(3), max_bind_params=12) == 1
        assert conn.execute.call_count == 1

    def test_chunk_size_plus_one_is_two_statements(self):
        conn = MagicMock()
        assert insert_chunks(conn, _batch(4), max_bind_params=12) == 2
        first_params = conn.execute.call_args_list[0].args[1]
        second_params = conn.execute.call_args_list[1].args[1]
        assert len(first_params) == 12
        assert second_params == [3, 3, 3, 3]

    def test_params_never_exceed_limit(self):
        conn = MagicMock()
        insert_chunks(conn, _batch(50), max_bind_params=30)
        for call in conn.execute.call_args_list:
            assert len(call.args[1]) <= 30

    def test_statement_shape(self):
        conn = MagicMock()
        insert_chunks(conn, _batch(2))
        statement = conn.execute.call_args.args[0]
        text = statement.as_string(None)
        assert text.startswith('INSERT INTO "widgets" ("a", "b", "c", "d") VALUES ')
        assert text.count("(%s, %s, %s, %s)") == 2
        assert "RETURNING" not in text

    def test_driver_error_wrapped(self):
        conn = MagicMock()
        conn.execute.side_effect = [None, psycopg.DataError("bad value")]
        with pytest.raises(ChunkWriteError) as excinfo:
            insert_chunks(conn, _batch(4), max_bind_params=12)
        assert excinfo.value.chunk_index == 1
        assert excinfo.value.start == 3
        assert isinstance(excinfo.value.__cause__, psycopg.DataError)


# ---------------------------------------------------------------------------
# insert_chunks_returning
# ---------------------------------------------------------------------------

class TestInsertChunksReturning:
    def test_ids_in_row_order_across_chunks(self):
        conn = _returning_conn()
        ids = insert_chunks_returning(conn, _batch(7), "id", max_bind_params=12)
        assert ids == [1, 2, 3, 4, 5, 6, 7]
        assert conn.execute.call_count == 3

    def test_ids_paired_in_sequence_order_whatever_the_result_order(self):
        conn = _returning_conn()
        execute = conn.execute.side_effect

        def reversed_result(statement, params):
            cur = execute(statement, params)
            cur.fetchall.return_value = cur.fetchall.return_value[::-1]
            return cur

        conn.execute.side_effect = reversed_result
        ids = insert_chunks_returning(conn, _batch(7), "id", max_bind_params=12)
        assert ids == [1, 2, 3, 4, 5, 6, 7]

    def test_returning_clause(self):
        conn = _returning_conn()
        insert_chunks_returning(conn, _batch(1), "id")
        assert conn.execute.call_args.args[0].as_string(None).endswith(' RETURNING "id"')

    def test_short_result_is_fatal(self):
        conn = _returning_conn(short_by=1)
        with pytest.raises(KeyAssociationError) as excinfo:
            insert_chunks_returning(conn, _batch(3), "id", max_bind_params=12)
        assert excinfo.value.submitted == 3
        assert excinfo.value.returned == 2


# ---------------------------------------------------------------------------
# write_batch
# ---------------------------------------------------------------------------

class TestWriteBatch:
    def test_empty_batch_is_noop(self):
        conn = MagicMock()
        assert write_batch(conn, _batch(0)) == 0
        conn.commit.assert_not_called()

    def test_commit_on_success(self):
        conn = MagicMock()
        assert write_batch(conn, _batch(4), max_bind_params=12) == 2
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()

    def test_rollback_on_later_chunk_failure(self):
        conn = MagicMock()
        conn.execute.side_effect = [None, psycopg.DataError("bad value")]
        with pytest.raises(ChunkWriteError):
            write_batch(conn, _batch(4), max_bind_params=12)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_dry_run_rolls_back(self):
        conn = MagicMock()
        write_batch(conn, _batch(2), dry_run=True)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
