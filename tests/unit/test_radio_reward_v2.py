"""Unit tests for the radio reward v2 parent/child writer.

A mock connection hands back sequential ids; no database access required.
"""

from itertools import count
from unittest.mock import MagicMock

import psycopg
import pytest

from reward_persist.mobile_reward_share import parse_record
from reward_persist.radio_reward_v2 import (
    COVERED_HEX_TABLE,
    PARENT_TABLE,
    SPEEDTEST_TABLE,
    BulkRadioRewardV2,
    IdentifiedReward,
    associate_ids,
    covered_hex_rows,
    location_trust_rows,
    speedtest_average_rows,
    speedtest_rows,
)
from reward_persist.shared import ChunkWriteError, KeyAssociationError, to_datetime

from reward_files import END, START, radio_reward_v2_share


def _reward(**kwargs):
    return parse_record(radio_reward_v2_share(**kwargs).SerializeToString()).reward


def _bulk(*rewards) -> BulkRadioRewardV2:
    bulk = BulkRadioRewardV2()
    for r in rewards:
        bulk.add(r, to_datetime(START), to_datetime(END))
    return bulk


def _conn(short_by: int = 0, fail_table: str | None = None) -> MagicMock:
    ids = count(100)
    conn = MagicMock()

    def execute(statement, params):
        text = repr(statement)
        if fail_table is not None and fail_table in text:
            raise psycopg.IntegrityError("forced")
        cur = MagicMock()
        rows = len(params) // PARENT_TABLE.width - short_by
        cur.fetchall.return_value = [(next(ids),) for _ in range(max(rows, 0))]
        return cur

    conn.execute.side_effect = execute
    return conn


# ---------------------------------------------------------------------------
# Id association
# ---------------------------------------------------------------------------

class TestAssociateIds:
    def test_pairs_by_position(self):
        a, b = _reward(speedtests=1), _reward(speedtests=2)
        out = associate_ids([7, 9], [a, b])
        assert out == [IdentifiedReward(7, a), IdentifiedReward(9, b)]

    def test_mismatch_is_fatal(self):
        with pytest.raises(KeyAssociationError):
            associate_ids([1], [_reward(), _reward()])


# ---------------------------------------------------------------------------
# Child flattening
# ---------------------------------------------------------------------------

class TestChildRows:
    def test_counts_and_parent_ids(self):
        identified = [
            IdentifiedReward(1, _reward(speedtests=2, trust_scores=1, covered_hexes=3)),
            IdentifiedReward(2, _reward(speedtests=1, with_average=True)),
        ]
        speedtests = speedtest_rows(identified)
        assert speedtests.column("id") == [1, 1, 2]
        assert location_trust_rows(identified).column("id") == [1]
        assert covered_hex_rows(identified).column("id") == [1, 1, 1]
        assert speedtest_average_rows(identified).column("id") == [2]

    def test_no_children_gives_empty_batches(self):
        identified = [IdentifiedReward(1, _reward())]
        assert not speedtest_rows(identified)
        assert not covered_hex_rows(identified)
        assert not location_trust_rows(identified)
        assert not speedtest_average_rows(identified)


# ---------------------------------------------------------------------------
# BulkRadioRewardV2.insert
# ---------------------------------------------------------------------------

class TestInsert:
    def test_empty_is_noop(self):
        conn = MagicMock()
        assert BulkRadioRewardV2().insert(conn) == {}
        conn.execute.assert_not_called()

    def test_parents_then_children_then_commit(self):
        conn = _conn()
        bulk = _bulk(_reward(speedtests=2), _reward(covered_hexes=1))
        written = bulk.insert(conn)
        assert written[PARENT_TABLE.name] == 2
        assert written[SPEEDTEST_TABLE.name] == 2
        assert written[COVERED_HEX_TABLE.name] == 1
        assert written["location_trust_scores"] == 0
        # parent statement first, then one per non-empty child table
        assert conn.execute.call_count == 3
        assert PARENT_TABLE.name in repr(conn.execute.call_args_list[0].args[0])
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        assert bulk.statements == 3

    def test_child_rows_carry_generated_ids(self):
        conn = _conn()
        _bulk(_reward(speedtests=1), _reward(speedtests=1)).insert(conn)
        child_params = conn.execute.call_args_list[1].args[1]
        # two speedtest rows of five columns each, id first
        assert child_params[0] == 100
        assert child_params[5] == 101

    def test_parent_chunk_boundary(self):
        size = 3
        max_params = size * PARENT_TABLE.width
        conn = _conn()
        _bulk(*[_reward() for _ in range(size)]).insert(conn, max_bind_params=max_params)
        assert conn.execute.call_count == 1

        conn = _conn()
        _bulk(*[_reward() for _ in range(size + 1)]).insert(conn, max_bind_params=max_params)
        assert conn.execute.call_count == 2

    def test_id_count_mismatch_rolls_back(self):
        conn = _conn(short_by=1)
        with pytest.raises(KeyAssociationError):
            _bulk(_reward(speedtests=1), _reward()).insert(conn)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_child_failure_rolls_back_whole_batch(self):
        conn = _conn(fail_table=COVERED_HEX_TABLE.name)
        with pytest.raises(ChunkWriteError):
            _bulk(_reward(speedtests=1, covered_hexes=2)).insert(conn)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_dry_run_rolls_back(self):
        conn = _conn()
        _bulk(_reward(speedtests=1)).insert(conn, dry_run=True)
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
