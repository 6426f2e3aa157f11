"""reward_persist.mobile_reward_share

Mobile reward share files: decoding, routing, and the destination tables.

Each record carries a reporting window and one reward variant. Routing:

  radio_reward             → mobile_radio_rewards             (simple)
  radio_reward_v2          → mobile_radio_rewards_v2 + children (transactional)
  gateway_reward           → mobile_gateway_rewards           (simple)
  subscriber_reward        → mobile_subscriber_rewards        (simple)
  service_provider_reward  → mobile_service_provider_rewards  (simple)
  promotion_reward         → mobile_promotion_rewards         (simple)
  unallocated_reward       → mobile_unallocated_rewards       (simple)
  no variant               → dropped, counted by the caller

Records with no variant set, including variants newer than this schema, are
dropped without error.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import BinaryIO

import psycopg
from psycopg.types.json import Jsonb

from reward_persist import radio_reward_v2
from reward_persist.bulk_writer import DEFAULT_MAX_BIND_PARAMS, write_batch
from reward_persist.columnar import ColumnarBatch, TableSpec
from reward_persist.decode import decode_file
from reward_persist.proto_schema import MobileRewardShare, enum_name
from reward_persist.records import (
    BoostedHex,
    CoveredHex,
    GatewayReward,
    LocationTrustScore,
    PromotionReward,
    RadioReward,
    RadioRewardV2,
    RewardVariant,
    ServiceProviderReward,
    SourceRecord,
    Speedtest,
    SubscriberReward,
    UnallocatedReward,
)
from reward_persist.shared import (
    empty_to_none,
    parse_decimal,
    public_key_to_string,
    to_datetime,
    to_i32,
    to_i64,
)
from reward_persist.tables import ensure_tables as _ensure_tables

log = logging.getLogger(__name__)

PREFIX = "mobile_reward_share"

# ---------------------------------------------------------------------------
# Simple tables
# ---------------------------------------------------------------------------

RADIO_REWARD_TABLE = TableSpec("mobile_radio_rewards", (
    "hotspot_key",
    "cbsd_id",
    "coverage_points",
    "amount",
    "start_period",
    "end_period",
    "transfer_amount",
    "boosted_hexes",
    "location_trust_score_multiplier",
    "speedtest_multiplier",
))

GATEWAY_REWARD_TABLE = TableSpec("mobile_gateway_rewards", (
    "hotspot_key", "amount", "start_period", "end_period",
))

SUBSCRIBER_REWARD_TABLE = TableSpec("mobile_subscriber_rewards", (
    "subscriber_id", "amount", "start_period", "end_period",
))

SERVICE_PROVIDER_REWARD_TABLE = TableSpec("mobile_service_provider_rewards", (
    "service_provider", "amount", "start_period", "end_period",
))

PROMOTION_REWARD_TABLE = TableSpec("mobile_promotion_rewards", (
    "entity", "service_provider_amount", "matched_amount", "start_period", "end_period",
))

UNALLOCATED_REWARD_TABLE = TableSpec("mobile_unallocated_rewards", (
    "reward_type", "amount", "start_period", "end_period",
))

SIMPLE_TABLES = (
    RADIO_REWARD_TABLE,
    GATEWAY_REWARD_TABLE,
    SUBSCRIBER_REWARD_TABLE,
    SERVICE_PROVIDER_REWARD_TABLE,
    PROMOTION_REWARD_TABLE,
    UNALLOCATED_REWARD_TABLE,
)

TABLE_NAMES = tuple(t.name for t in radio_reward_v2.TABLES) + tuple(t.name for t in SIMPLE_TABLES)

DDL = radio_reward_v2.DDL + (
    """
    CREATE TABLE IF NOT EXISTS mobile_radio_rewards (
        hotspot_key text NOT NULL,
        cbsd_id text NULL,
        coverage_points int8 NOT NULL,
        amount int8 NOT NULL,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL,
        transfer_amount int8 NOT NULL,
        boosted_hexes jsonb NOT NULL,
        location_trust_score_multiplier int4 NOT NULL,
        speedtest_multiplier int4 NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mobile_gateway_rewards (
        hotspot_key text NOT NULL,
        amount int8 NOT NULL,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mobile_subscriber_rewards (
        subscriber_id bytea NOT NULL,
        amount int8 NOT NULL,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mobile_service_provider_rewards (
        service_provider text NOT NULL,
        amount int8 NOT NULL,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mobile_promotion_rewards (
        entity text NOT NULL,
        service_provider_amount int8 NOT NULL,
        matched_amount int8 NOT NULL,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mobile_unallocated_rewards (
        reward_type text NOT NULL,
        amount int8 NOT NULL,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL
    )
    """,
)


# ---------------------------------------------------------------------------
# Wire → record
# ---------------------------------------------------------------------------

def _speedtest(msg) -> Speedtest:
    return Speedtest(
        upload_speed_bps=msg.upload_speed_bps,
        download_speed_bps=msg.download_speed_bps,
        latency_ms=msg.latency_ms,
        timestamp=msg.timestamp,
    )


def _covered_hex(msg) -> CoveredHex:
    return CoveredHex(
        location=msg.location,
        base_coverage_points=parse_decimal(msg.base_coverage_points.value),
        boosted_coverage_points=parse_decimal(msg.boosted_coverage_points.value),
        urbanized=enum_name(msg, "urbanized"),
        footfall=enum_name(msg, "footfall"),
        landtype=enum_name(msg, "landtype"),
        assignment_multiplier=parse_decimal(msg.assignment_multiplier.value),
        rank=msg.rank,
        rank_multiplier=parse_decimal(msg.rank_multiplier.value),
        boosted_multiplier=msg.boosted_multiplier,
    )


def _radio_reward_v2(msg) -> RadioRewardV2:
    return RadioRewardV2(
        hotspot_key=msg.hotspot_key,
        cbsd_id=empty_to_none(msg.cbsd_id),
        base_coverage_points_sum=parse_decimal(msg.base_coverage_points_sum.value),
        boosted_coverage_points_sum=parse_decimal(msg.boosted_coverage_points_sum.value),
        base_reward_shares=parse_decimal(msg.base_reward_shares.value),
        boosted_reward_shares=parse_decimal(msg.boosted_reward_shares.value),
        base_poc_reward=msg.base_poc_reward,
        boosted_poc_reward=msg.boosted_poc_reward,
        seniority_timestamp=msg.seniority_timestamp,
        coverage_object=msg.coverage_object,
        location_trust_score_multiplier=parse_decimal(msg.location_trust_score_multiplier.value),
        speedtest_multiplier=parse_decimal(msg.speedtest_multiplier.value),
        sp_boosted_hex_status=enum_name(msg, "sp_boosted_hex_status"),
        oracle_boosted_hex_status=enum_name(msg, "oracle_boosted_hex_status"),
        location_trust_scores=tuple(
            LocationTrustScore(
                meters_to_asserted=lts.meters_to_asserted,
                trust_score=parse_decimal(lts.trust_score.value),
            )
            for lts in msg.location_trust_scores
        ),
        speedtests=tuple(_speedtest(st) for st in msg.speedtests),
        speedtest_average=(
            _speedtest(msg.speedtest_average) if msg.HasField("speedtest_average") else None
        ),
        covered_hexes=tuple(_covered_hex(h) for h in msg.covered_hexes),
    )


def _reward(share) -> RewardVariant | None:
    kind = share.WhichOneof("reward")
    if kind is None:
        return None
    msg = getattr(share, kind)
    if kind == "radio_reward_v2":
        return _radio_reward_v2(msg)
    if kind == "radio_reward":
        return RadioReward(
            hotspot_key=msg.hotspot_key,
            cbsd_id=empty_to_none(msg.cbsd_id),
            poc_reward=msg.poc_reward,
            coverage_points=msg.coverage_points,
            dc_transfer_reward=msg.dc_transfer_reward,
            location_trust_score_multiplier=msg.location_trust_score_multiplier,
            speedtest_multiplier=msg.speedtest_multiplier,
            boosted_hexes=tuple(
                BoostedHex(location=h.location, multiplier=h.multiplier)
                for h in msg.boosted_hexes
            ),
        )
    if kind == "gateway_reward":
        return GatewayReward(hotspot_key=msg.hotspot_key, dc_transfer_reward=msg.dc_transfer_reward)
    if kind == "subscriber_reward":
        return SubscriberReward(
            subscriber_id=msg.subscriber_id,
            discovery_location_amount=msg.discovery_location_amount,
        )
    if kind == "service_provider_reward":
        return ServiceProviderReward(
            service_provider=enum_name(msg, "service_provider_id"),
            amount=msg.amount,
        )
    if kind == "promotion_reward":
        return PromotionReward(
            entity=msg.entity,
            service_provider_amount=msg.service_provider_amount,
            matched_amount=msg.matched_amount,
        )
    if kind == "unallocated_reward":
        return UnallocatedReward(reward_type=enum_name(msg, "reward_type"), amount=msg.amount)
    return None


def parse_record(payload: bytes) -> SourceRecord:
    share = MobileRewardShare.FromString(payload)
    return SourceRecord(
        start_period=share.start_period,
        end_period=share.end_period,
        reward=_reward(share),
    )


# ---------------------------------------------------------------------------
# Router + accumulators
# ---------------------------------------------------------------------------

class MobileRewardShareBatch:
    """One accumulator per destination table family for a single file."""

    def __init__(self) -> None:
        self.radio_rewards_v2 = radio_reward_v2.BulkRadioRewardV2()
        self.radio_rewards = ColumnarBatch(RADIO_REWARD_TABLE)
        self.gateway_rewards = ColumnarBatch(GATEWAY_REWARD_TABLE)
        self.subscriber_rewards = ColumnarBatch(SUBSCRIBER_REWARD_TABLE)
        self.service_provider_rewards = ColumnarBatch(SERVICE_PROVIDER_REWARD_TABLE)
        self.promotion_rewards = ColumnarBatch(PROMOTION_REWARD_TABLE)
        self.unallocated_rewards = ColumnarBatch(UNALLOCATED_REWARD_TABLE)
        self.statements = 0
        self.written: dict[str, int] = {}

    def add(self, record: SourceRecord) -> str | None:
        """Route record to its accumulator; return the variant name, or None if dropped."""
        reward = record.reward
        if reward is None:
            return None

        start_period = to_datetime(record.start_period)
        end_period = to_datetime(record.end_period)

        if isinstance(reward, RadioRewardV2):
            self.radio_rewards_v2.add(reward, start_period, end_period)
            return "radio_reward_v2"
        if isinstance(reward, RadioReward):
            self.radio_rewards.add(
                hotspot_key=public_key_to_string(reward.hotspot_key),
                cbsd_id=reward.cbsd_id,
                coverage_points=to_i64(reward.coverage_points, "coverage_points"),
                amount=to_i64(reward.poc_reward, "poc_reward"),
                start_period=start_period,
                end_period=end_period,
                transfer_amount=to_i64(reward.dc_transfer_reward, "dc_transfer_reward"),
                boosted_hexes=Jsonb([
                    {
                        "location": to_i64(h.location, "boosted_hex.location"),
                        "multiplier": to_i32(h.multiplier, "boosted_hex.multiplier"),
                    }
                    for h in reward.boosted_hexes
                ]),
                location_trust_score_multiplier=to_i32(
                    reward.location_trust_score_multiplier, "location_trust_score_multiplier"
                ),
                speedtest_multiplier=to_i32(reward.speedtest_multiplier, "speedtest_multiplier"),
            )
            return "radio_reward"
        if isinstance(reward, GatewayReward):
            self.gateway_rewards.add(
                hotspot_key=public_key_to_string(reward.hotspot_key),
                amount=to_i64(reward.dc_transfer_reward, "dc_transfer_reward"),
                start_period=start_period,
                end_period=end_period,
            )
            return "gateway_reward"
        if isinstance(reward, SubscriberReward):
            self.subscriber_rewards.add(
                subscriber_id=reward.subscriber_id,
                amount=to_i64(reward.discovery_location_amount, "discovery_location_amount"),
                start_period=start_period,
                end_period=end_period,
            )
            return "subscriber_reward"
        if isinstance(reward, ServiceProviderReward):
            self.service_provider_rewards.add(
                service_provider=reward.service_provider,
                amount=to_i64(reward.amount, "amount"),
                start_period=start_period,
                end_period=end_period,
            )
            return "service_provider_reward"
        if isinstance(reward, PromotionReward):
            self.promotion_rewards.add(
                entity=reward.entity,
                service_provider_amount=to_i64(
                    reward.service_provider_amount, "service_provider_amount"
                ),
                matched_amount=to_i64(reward.matched_amount, "matched_amount"),
                start_period=start_period,
                end_period=end_period,
            )
            return "promotion_reward"
        if isinstance(reward, UnallocatedReward):
            self.unallocated_rewards.add(
                reward_type=reward.reward_type,
                amount=to_i64(reward.amount, "amount"),
                start_period=start_period,
                end_period=end_period,
            )
            return "unallocated_reward"
        raise TypeError(f"unhandled reward variant {type(reward).__name__}")

    def simple_batches(self) -> tuple[ColumnarBatch, ...]:
        return (
            self.radio_rewards,
            self.gateway_rewards,
            self.subscriber_rewards,
            self.service_provider_rewards,
            self.promotion_rewards,
            self.unallocated_rewards,
        )

    def write(
        self,
        conn: psycopg.Connection,
        max_bind_params: int = DEFAULT_MAX_BIND_PARAMS,
        dry_run: bool = False,
    ) -> dict[str, int]:
        """Write every non-empty accumulator; each family is its own transaction.

        The v2 family goes first, then each simple table in a fixed order.
        A failure stops at that batch; batches already committed stay committed
        and remain recorded in ``written``.
        """
        self.written.update(self.radio_rewards_v2.insert(conn, max_bind_params, dry_run))
        self.statements += self.radio_rewards_v2.statements
        for batch in self.simple_batches():
            if batch:
                self.statements += write_batch(conn, batch, max_bind_params, dry_run)
                self.written[batch.table.name] = len(batch)
        log.debug("mobile reward share batch written: %s", self.written)
        return self.written


# ---------------------------------------------------------------------------
# File type handler
# ---------------------------------------------------------------------------

class MobileRewardShareFileType:
    prefix = PREFIX
    table_names = TABLE_NAMES

    def decode(self, stream: BinaryIO, *, source: str, compressed: bool) -> Iterator[SourceRecord]:
        return decode_file(stream, parse_record, source=source, compressed=compressed)

    def ensure_tables(self, conn: psycopg.Connection) -> None:
        _ensure_tables(conn, PREFIX, DDL)

    def new_batch(self) -> MobileRewardShareBatch:
        return MobileRewardShareBatch()
