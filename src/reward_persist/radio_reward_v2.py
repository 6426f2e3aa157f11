"""reward_persist.radio_reward_v2

Transactional parent/child writer for radio reward v2 records.

One radio reward v2 becomes one row in mobile_radio_rewards_v2 plus zero or
more rows in each child table, all keyed by the parent's generated id:

  location_trust_scores  one row per location trust score
  speedtests             one row per speedtest
  speedtest_average      one row when the reward carries an average
  covered_hexes          one row per covered hex

Write order inside a single transaction:
  1. Parent rows in chunks, each chunk returning its generated ids in
     submission order (count-checked per chunk).
  2. Zip ids with the source rewards by ordinal position.
  3. Flatten each child collection against those ids and insert every
     child table in its own chunk size.
  4. Commit. Any failure rolls back the whole batch, so a parent row is
     never visible without its children, nor children without their parent.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import psycopg

from reward_persist.bulk_writer import (
    DEFAULT_MAX_BIND_PARAMS,
    chunk_bounds,
    chunk_size_for,
    insert_chunks,
    insert_chunks_returning,
)
from reward_persist.columnar import ColumnarBatch, TableSpec
from reward_persist.records import RadioRewardV2, Speedtest
from reward_persist.shared import (
    KeyAssociationError,
    empty_to_none,
    public_key_to_string,
    to_datetime,
    to_i32,
    to_i64,
    to_uuid,
)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

PARENT_TABLE = TableSpec("mobile_radio_rewards_v2", (
    "start_period",
    "end_period",
    "hotspot_key",
    "cbsd_id",
    "base_coverage_points_sum",
    "boosted_coverage_points_sum",
    "base_reward_shares",
    "boosted_reward_shares",
    "base_poc_reward",
    "boosted_poc_reward",
    "seniority_ts",
    "coverage_object",
    "location_trust_score_multiplier",
    "speedtest_multiplier",
    "sp_boosted_hex_status",
    "oracle_boosted_hex_status",
))

LOCATION_TRUST_TABLE = TableSpec("location_trust_scores", (
    "id", "meters_to_asserted", "trust_score",
))

SPEEDTEST_TABLE = TableSpec("speedtests", (
    "id", "upload", "download", "latency", "timestamp",
))

SPEEDTEST_AVERAGE_TABLE = TableSpec("speedtest_average", (
    "id", "upload", "download", "latency", "timestamp",
))

COVERED_HEX_TABLE = TableSpec("covered_hexes", (
    "id",
    "location",
    "base_coverage_points",
    "boosted_coverage_points",
    "urbanized",
    "footfall",
    "landtype",
    "assignment_multiplier",
    "rank",
    "rank_multiplier",
    "boosted_multiplier",
))

TABLES = (
    PARENT_TABLE,
    LOCATION_TRUST_TABLE,
    SPEEDTEST_TABLE,
    SPEEDTEST_AVERAGE_TABLE,
    COVERED_HEX_TABLE,
)

DDL = (
    """
    CREATE TABLE IF NOT EXISTS mobile_radio_rewards_v2 (
        id BIGSERIAL PRIMARY KEY,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL,
        hotspot_key text NOT NULL,
        cbsd_id text NULL,
        base_coverage_points_sum numeric NOT NULL,
        boosted_coverage_points_sum numeric NOT NULL,
        base_reward_shares numeric NOT NULL,
        boosted_reward_shares numeric NOT NULL,
        base_poc_reward int8 NOT NULL,
        boosted_poc_reward int8 NOT NULL,
        seniority_ts timestamptz NOT NULL,
        coverage_object uuid NOT NULL,
        location_trust_score_multiplier numeric NOT NULL,
        speedtest_multiplier numeric NOT NULL,
        sp_boosted_hex_status text NOT NULL,
        oracle_boosted_hex_status text NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS location_trust_scores (
        id bigint NOT NULL REFERENCES mobile_radio_rewards_v2 (id),
        meters_to_asserted int8 NOT NULL,
        trust_score numeric NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS speedtests (
        id bigint NOT NULL REFERENCES mobile_radio_rewards_v2 (id),
        upload int8 NOT NULL,
        download int8 NOT NULL,
        latency int4 NOT NULL,
        timestamp timestamptz NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS speedtest_average (
        id bigint NOT NULL REFERENCES mobile_radio_rewards_v2 (id),
        upload int8 NOT NULL,
        download int8 NOT NULL,
        latency int4 NOT NULL,
        timestamp timestamptz NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS covered_hexes (
        id bigint NOT NULL REFERENCES mobile_radio_rewards_v2 (id),
        location int8 NOT NULL,
        base_coverage_points numeric NOT NULL,
        boosted_coverage_points numeric NOT NULL,
        urbanized text NOT NULL,
        footfall text NOT NULL,
        landtype text NOT NULL,
        assignment_multiplier numeric NOT NULL,
        rank int4 NOT NULL,
        rank_multiplier numeric NOT NULL,
        boosted_multiplier int4 NOT NULL
    )
    """,
)


# ---------------------------------------------------------------------------
# Id association + child flattening
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IdentifiedReward:
    id: int
    reward: RadioRewardV2


def associate_ids(ids: Sequence[int], rewards: Sequence[RadioRewardV2]) -> list[IdentifiedReward]:
    """Pair the i-th generated id with the i-th submitted reward."""
    if len(ids) != len(rewards):
        raise KeyAssociationError(PARENT_TABLE.name, len(rewards), len(ids))
    return [IdentifiedReward(id=i, reward=r) for i, r in zip(ids, rewards)]


def _add_speedtest(batch: ColumnarBatch, parent_id: int, st: Speedtest) -> None:
    batch.add(
        id=parent_id,
        upload=to_i64(st.upload_speed_bps, "upload_speed_bps"),
        download=to_i64(st.download_speed_bps, "download_speed_bps"),
        latency=to_i32(st.latency_ms, "latency_ms"),
        timestamp=to_datetime(st.timestamp),
    )


def location_trust_rows(identified: Sequence[IdentifiedReward]) -> ColumnarBatch:
    batch = ColumnarBatch(LOCATION_TRUST_TABLE)
    for ir in identified:
        for lts in ir.reward.location_trust_scores:
            batch.add(
                id=ir.id,
                meters_to_asserted=to_i64(lts.meters_to_asserted, "meters_to_asserted"),
                trust_score=lts.trust_score,
            )
    return batch


def speedtest_rows(identified: Sequence[IdentifiedReward]) -> ColumnarBatch:
    batch = ColumnarBatch(SPEEDTEST_TABLE)
    for ir in identified:
        for st in ir.reward.speedtests:
            _add_speedtest(batch, ir.id, st)
    return batch


def speedtest_average_rows(identified: Sequence[IdentifiedReward]) -> ColumnarBatch:
    batch = ColumnarBatch(SPEEDTEST_AVERAGE_TABLE)
    for ir in identified:
        if ir.reward.speedtest_average is not None:
            _add_speedtest(batch, ir.id, ir.reward.speedtest_average)
    return batch


def covered_hex_rows(identified: Sequence[IdentifiedReward]) -> ColumnarBatch:
    batch = ColumnarBatch(COVERED_HEX_TABLE)
    for ir in identified:
        for h in ir.reward.covered_hexes:
            batch.add(
                id=ir.id,
                location=to_i64(h.location, "location"),
                base_coverage_points=h.base_coverage_points,
                boosted_coverage_points=h.boosted_coverage_points,
                urbanized=h.urbanized,
                footfall=h.footfall,
                landtype=h.landtype,
                assignment_multiplier=h.assignment_multiplier,
                rank=to_i32(h.rank, "rank"),
                rank_multiplier=h.rank_multiplier,
                boosted_multiplier=to_i32(h.boosted_multiplier, "boosted_multiplier"),
            )
    return batch


def _check_children(reward: RadioRewardV2) -> None:
    """Raise ConversionError now for any child value that could not be written later."""
    for lts in reward.location_trust_scores:
        to_i64(lts.meters_to_asserted, "meters_to_asserted")
    speedtests = list(reward.speedtests)
    if reward.speedtest_average is not None:
        speedtests.append(reward.speedtest_average)
    for st in speedtests:
        to_i64(st.upload_speed_bps, "upload_speed_bps")
        to_i64(st.download_speed_bps, "download_speed_bps")
        to_i32(st.latency_ms, "latency_ms")
        to_datetime(st.timestamp)
    for h in reward.covered_hexes:
        to_i64(h.location, "location")
        to_i32(h.rank, "rank")
        to_i32(h.boosted_multiplier, "boosted_multiplier")


CHILD_BUILDERS = (
    location_trust_rows,
    speedtest_rows,
    speedtest_average_rows,
    covered_hex_rows,
)


# ---------------------------------------------------------------------------
# Bulk writer
# ---------------------------------------------------------------------------

class BulkRadioRewardV2:
    """Accumulates radio reward v2 records and writes them as one transaction."""

    def __init__(self) -> None:
        self.parents = ColumnarBatch(PARENT_TABLE)
        self._rewards: list[RadioRewardV2] = []
        self.statements = 0

    def add(self, reward: RadioRewardV2, start_period: datetime, end_period: datetime) -> None:
        """Append one parent row; child values are range-checked here too."""
        _check_children(reward)
        self.parents.add(
            start_period=start_period,
            end_period=end_period,
            hotspot_key=public_key_to_string(reward.hotspot_key),
            cbsd_id=empty_to_none(reward.cbsd_id or ""),
            base_coverage_points_sum=reward.base_coverage_points_sum,
            boosted_coverage_points_sum=reward.boosted_coverage_points_sum,
            base_reward_shares=reward.base_reward_shares,
            boosted_reward_shares=reward.boosted_reward_shares,
            base_poc_reward=to_i64(reward.base_poc_reward, "base_poc_reward"),
            boosted_poc_reward=to_i64(reward.boosted_poc_reward, "boosted_poc_reward"),
            seniority_ts=to_datetime(reward.seniority_timestamp),
            coverage_object=to_uuid(reward.coverage_object, "coverage_object"),
            location_trust_score_multiplier=reward.location_trust_score_multiplier,
            speedtest_multiplier=reward.speedtest_multiplier,
            sp_boosted_hex_status=reward.sp_boosted_hex_status,
            oracle_boosted_hex_status=reward.oracle_boosted_hex_status,
        )
        self._rewards.append(reward)

    def __len__(self) -> int:
        return len(self._rewards)

    def insert(
        self,
        conn: psycopg.Connection,
        max_bind_params: int = DEFAULT_MAX_BIND_PARAMS,
        dry_run: bool = False,
    ) -> dict[str, int]:
        """Write parents and children atomically; return rows written per table.

        The connection must not be in autocommit mode. On any failure the
        transaction is rolled back and the error re-raised.
        """
        if not self._rewards:
            return {}

        written: dict[str, int] = {}
        try:
            ids = insert_chunks_returning(conn, self.parents, "id", max_bind_params)
            size = chunk_size_for(PARENT_TABLE.width, max_bind_params)
            self.statements += sum(1 for _ in chunk_bounds(len(self.parents), size))
            identified = associate_ids(ids, self._rewards)
            written[PARENT_TABLE.name] = len(identified)

            for build in CHILD_BUILDERS:
                children = build(identified)
                if children:
                    self.statements += insert_chunks(conn, children, max_bind_params)
                written[children.table.name] = len(children)
        except Exception:
            conn.rollback()
            log.warning("rolled back radio reward v2 batch of %d rewards", len(self._rewards))
            raise

        if dry_run:
            conn.rollback()
        else:
            conn.commit()
        log.info("radio reward v2 batch written: %s", written)
        return written
