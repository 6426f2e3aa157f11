"""reward_persist.records

Decoded record types. Each reward file decodes to a stream of top-level
records whose `reward` is one member of a closed union, or None when the
wire record carried no (or an unrecognised) variant.

Values stay in their wire shape here (unsigned integers, raw key bytes,
epoch seconds). Narrowing to column types happens when a record is added
to a columnar batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union


# ---------------------------------------------------------------------------
# Mobile reward share
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BoostedHex:
    location: int
    multiplier: int


@dataclass(frozen=True)
class RadioReward:
    hotspot_key: bytes
    cbsd_id: str | None
    poc_reward: int
    coverage_points: int
    dc_transfer_reward: int
    location_trust_score_multiplier: int
    speedtest_multiplier: int
    boosted_hexes: tuple[BoostedHex, ...] = ()


@dataclass(frozen=True)
class LocationTrustScore:
    meters_to_asserted: int
    trust_score: Decimal


@dataclass(frozen=True)
class Speedtest:
    upload_speed_bps: int
    download_speed_bps: int
    latency_ms: int
    timestamp: int


@dataclass(frozen=True)
class CoveredHex:
    location: int
    base_coverage_points: Decimal
    boosted_coverage_points: Decimal
    urbanized: str
    footfall: str
    landtype: str
    assignment_multiplier: Decimal
    rank: int
    rank_multiplier: Decimal
    boosted_multiplier: int


@dataclass(frozen=True)
class RadioRewardV2:
    hotspot_key: bytes
    cbsd_id: str | None
    base_coverage_points_sum: Decimal
    boosted_coverage_points_sum: Decimal
    base_reward_shares: Decimal
    boosted_reward_shares: Decimal
    base_poc_reward: int
    boosted_poc_reward: int
    seniority_timestamp: int
    coverage_object: bytes
    location_trust_score_multiplier: Decimal
    speedtest_multiplier: Decimal
    sp_boosted_hex_status: str
    oracle_boosted_hex_status: str
    location_trust_scores: tuple[LocationTrustScore, ...] = ()
    speedtests: tuple[Speedtest, ...] = ()
    speedtest_average: Speedtest | None = None
    covered_hexes: tuple[CoveredHex, ...] = ()


@dataclass(frozen=True)
class GatewayReward:
    hotspot_key: bytes
    dc_transfer_reward: int


@dataclass(frozen=True)
class SubscriberReward:
    subscriber_id: bytes
    discovery_location_amount: int


@dataclass(frozen=True)
class ServiceProviderReward:
    service_provider: str
    amount: int


@dataclass(frozen=True)
class PromotionReward:
    entity: str
    service_provider_amount: int
    matched_amount: int


@dataclass(frozen=True)
class UnallocatedReward:
    reward_type: str
    amount: int


RewardVariant = Union[
    RadioReward,
    RadioRewardV2,
    GatewayReward,
    SubscriberReward,
    ServiceProviderReward,
    PromotionReward,
    UnallocatedReward,
]


@dataclass(frozen=True)
class SourceRecord:
    start_period: int
    end_period: int
    reward: RewardVariant | None


# ---------------------------------------------------------------------------
# IoT reward share
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IotGatewayReward:
    hotspot_key: bytes
    beacon_amount: int
    witness_amount: int
    dc_transfer_amount: int


@dataclass(frozen=True)
class IotOperationalReward:
    amount: int


@dataclass(frozen=True)
class IotUnallocatedReward:
    reward_type: str
    amount: int


IotRewardVariant = Union[IotGatewayReward, IotOperationalReward, IotUnallocatedReward]


@dataclass(frozen=True)
class IotRewardShareRecord:
    start_period: int
    end_period: int
    reward: IotRewardVariant | None


# ---------------------------------------------------------------------------
# Reward manifest
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RewardManifestRecord:
    start_timestamp: int
    end_timestamp: int
    epoch: int
    price: int
    token: str
    written_files: tuple[str, ...] = ()
