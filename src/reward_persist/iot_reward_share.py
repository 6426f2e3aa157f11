"""reward_persist.iot_reward_share

IoT reward share files.

  gateway_reward      → iot_gateway_rewards
  operational_reward  → iot_other_rewards (reward_type 'operational')
  unallocated_reward  → iot_other_rewards (reward_type = unallocated type name)
  no variant          → dropped
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import BinaryIO

import psycopg

from reward_persist.bulk_writer import DEFAULT_MAX_BIND_PARAMS, write_batch
from reward_persist.columnar import ColumnarBatch, TableSpec
from reward_persist.decode import decode_file
from reward_persist.proto_schema import IotRewardShare, enum_name
from reward_persist.records import (
    IotGatewayReward,
    IotOperationalReward,
    IotRewardShareRecord,
    IotRewardVariant,
    IotUnallocatedReward,
)
from reward_persist.shared import public_key_to_string, to_datetime, to_i64
from reward_persist.tables import ensure_tables as _ensure_tables

PREFIX = "iot_reward_share"

GATEWAY_REWARD_TABLE = TableSpec("iot_gateway_rewards", (
    "hotspot_key",
    "beacon_amount",
    "witness_amount",
    "dc_transfer_amount",
    "start_period",
    "end_period",
))

OTHER_REWARD_TABLE = TableSpec("iot_other_rewards", (
    "reward_type", "amount", "start_period", "end_period",
))

TABLE_NAMES = (GATEWAY_REWARD_TABLE.name, OTHER_REWARD_TABLE.name)

DDL = (
    """
    CREATE TABLE IF NOT EXISTS iot_gateway_rewards (
        hotspot_key text NOT NULL,
        beacon_amount int8 NOT NULL,
        witness_amount int8 NOT NULL,
        dc_transfer_amount int8 NOT NULL,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS iot_other_rewards (
        reward_type text NOT NULL,
        amount int8 NOT NULL,
        start_period timestamptz NOT NULL,
        end_period timestamptz NOT NULL
    )
    """,
)

OPERATIONAL_REWARD_TYPE = "operational"


def _reward(share) -> IotRewardVariant | None:
    kind = share.WhichOneof("reward")
    if kind == "gateway_reward":
        msg = share.gateway_reward
        return IotGatewayReward(
            hotspot_key=msg.hotspot_key,
            beacon_amount=msg.beacon_amount,
            witness_amount=msg.witness_amount,
            dc_transfer_amount=msg.dc_transfer_amount,
        )
    if kind == "operational_reward":
        return IotOperationalReward(amount=share.operational_reward.amount)
    if kind == "unallocated_reward":
        msg = share.unallocated_reward
        return IotUnallocatedReward(reward_type=enum_name(msg, "reward_type"), amount=msg.amount)
    return None


def parse_record(payload: bytes) -> IotRewardShareRecord:
    share = IotRewardShare.FromString(payload)
    return IotRewardShareRecord(
        start_period=share.start_period,
        end_period=share.end_period,
        reward=_reward(share),
    )


class IotRewardShareBatch:
    def __init__(self) -> None:
        self.gateway_rewards = ColumnarBatch(GATEWAY_REWARD_TABLE)
        self.other_rewards = ColumnarBatch(OTHER_REWARD_TABLE)
        self.statements = 0
        self.written: dict[str, int] = {}

    def add(self, record: IotRewardShareRecord) -> str | None:
        reward = record.reward
        if reward is None:
            return None
        start_period = to_datetime(record.start_period)
        end_period = to_datetime(record.end_period)

        if isinstance(reward, IotGatewayReward):
            self.gateway_rewards.add(
                hotspot_key=public_key_to_string(reward.hotspot_key),
                beacon_amount=to_i64(reward.beacon_amount, "beacon_amount"),
                witness_amount=to_i64(reward.witness_amount, "witness_amount"),
                dc_transfer_amount=to_i64(reward.dc_transfer_amount, "dc_transfer_amount"),
                start_period=start_period,
                end_period=end_period,
            )
            return "gateway_reward"
        if isinstance(reward, IotOperationalReward):
            self.other_rewards.add(
                reward_type=OPERATIONAL_REWARD_TYPE,
                amount=to_i64(reward.amount, "amount"),
                start_period=start_period,
                end_period=end_period,
            )
            return "operational_reward"
        if isinstance(reward, IotUnallocatedReward):
            self.other_rewards.add(
                reward_type=reward.reward_type,
                amount=to_i64(reward.amount, "amount"),
                start_period=start_period,
                end_period=end_period,
            )
            return "unallocated_reward"
        raise TypeError(f"unhandled reward variant {type(reward).__name__}")

    def write(
        self,
        conn: psycopg.Connection,
        max_bind_params: int = DEFAULT_MAX_BIND_PARAMS,
        dry_run: bool = False,
    ) -> dict[str, int]:
        for batch in (self.gateway_rewards, self.other_rewards):
            if batch:
                self.statements += write_batch(conn, batch, max_bind_params, dry_run)
                self.written[batch.table.name] = len(batch)
        return self.written


class IotRewardShareFileType:
    prefix = PREFIX
    table_names = TABLE_NAMES

    def decode(
        self, stream: BinaryIO, *, source: str, compressed: bool
    ) -> Iterator[IotRewardShareRecord]:
        return decode_file(stream, parse_record, source=source, compressed=compressed)

    def ensure_tables(self, conn: psycopg.Connection) -> None:
        _ensure_tables(conn, PREFIX, DDL)

    def new_batch(self) -> IotRewardShareBatch:
        return IotRewardShareBatch()
