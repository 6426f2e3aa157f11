"""reward_persist.reward_manifest

Reward manifest files: one row per manifest in reward_manifests.

The token column holds the full reward token enum name (for example
``mobile_reward_token_hnt``) from whichever reward data block the manifest
carries. A manifest with no reward data block cannot be attributed to a
token and fails decoding.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import BinaryIO

import psycopg

from reward_persist.bulk_writer import DEFAULT_MAX_BIND_PARAMS, write_batch
from reward_persist.columnar import ColumnarBatch, TableSpec
from reward_persist.decode import decode_file
from reward_persist.proto_schema import RewardManifest, enum_name
from reward_persist.records import RewardManifestRecord
from reward_persist.shared import DecodeError, to_datetime, to_i64
from reward_persist.tables import ensure_tables as _ensure_tables

PREFIX = "reward_manifest"

MANIFEST_TABLE = TableSpec("reward_manifests", (
    "start_timestamp", "end_timestamp", "epoch", "price", "token",
))

TABLE_NAMES = (MANIFEST_TABLE.name,)

DDL = (
    """
    CREATE TABLE IF NOT EXISTS reward_manifests (
        start_timestamp timestamptz NOT NULL,
        end_timestamp timestamptz NOT NULL,
        epoch int8 NOT NULL,
        price int8 NOT NULL,
        token text NOT NULL
    )
    """,
)


def parse_record(payload: bytes) -> RewardManifestRecord:
    manifest = RewardManifest.FromString(payload)
    kind = manifest.WhichOneof("reward_data")
    if kind is None:
        raise DecodeError("reward manifest has no reward data")
    token = enum_name(getattr(manifest, kind), "token")
    return RewardManifestRecord(
        start_timestamp=manifest.start_timestamp,
        end_timestamp=manifest.end_timestamp,
        epoch=manifest.epoch,
        price=manifest.price,
        token=token,
        written_files=tuple(manifest.written_files),
    )


class RewardManifestBatch:
    def __init__(self) -> None:
        self.manifests = ColumnarBatch(MANIFEST_TABLE)
        self.statements = 0
        self.written: dict[str, int] = {}

    def add(self, record: RewardManifestRecord) -> str:
        self.manifests.add(
            start_timestamp=to_datetime(record.start_timestamp),
            end_timestamp=to_datetime(record.end_timestamp),
            epoch=to_i64(record.epoch, "epoch"),
            price=to_i64(record.price, "price"),
            token=record.token,
        )
        return "reward_manifest"

    def write(
        self,
        conn: psycopg.Connection,
        max_bind_params: int = DEFAULT_MAX_BIND_PARAMS,
        dry_run: bool = False,
    ) -> dict[str, int]:
        if self.manifests:
            self.statements += write_batch(conn, self.manifests, max_bind_params, dry_run)
            self.written[MANIFEST_TABLE.name] = len(self.manifests)
        return self.written


class RewardManifestFileType:
    prefix = PREFIX
    table_names = TABLE_NAMES

    def decode(
        self, stream: BinaryIO, *, source: str, compressed: bool
    ) -> Iterator[RewardManifestRecord]:
        return decode_file(stream, parse_record, source=source, compressed=compressed)

    def ensure_tables(self, conn: psycopg.Connection) -> None:
        _ensure_tables(conn, PREFIX, DDL)

    def new_batch(self) -> RewardManifestBatch:
        return RewardManifestBatch()
