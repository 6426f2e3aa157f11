"""reward_persist.proto_schema

Protobuf wire schema for the reward files this importer reads.

The schema is declared here with descriptor_pb2 and registered into a private
DescriptorPool, so no generated *_pb2 modules are needed. Message layouts:

  helium.Decimal                      { string value = 1 }
  helium.poc_mobile.mobile_reward_share
      start_period = 1, end_period = 2,
      oneof reward { radio_reward = 3; gateway_reward = 4; subscriber_reward = 5;
                     service_provider_reward = 6; unallocated_reward = 7;
                     radio_reward_v2 = 8; promotion_reward = 9 }
  helium.poc_lora.iot_reward_share
      start_period = 1, end_period = 2,
      oneof reward { gateway_reward = 3; operational_reward = 4; unallocated_reward = 5 }
  helium.reward_manifest
      written_files = 1, start_timestamp = 2, end_timestamp = 3,
      oneof reward_data { mobile_reward_data = 4; iot_reward_data = 5 },
      epoch = 6, price = 7
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message

_F = descriptor_pb2.FieldDescriptorProto

STRING = _F.TYPE_STRING
BYTES = _F.TYPE_BYTES
UINT32 = _F.TYPE_UINT32
UINT64 = _F.TYPE_UINT64
MESSAGE = _F.TYPE_MESSAGE
ENUM = _F.TYPE_ENUM

DECIMAL = ".helium.Decimal"


# ---------------------------------------------------------------------------
# Descriptor builders
# ---------------------------------------------------------------------------

def _field(
    msg: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    ftype: int,
    type_name: str | None = None,
    repeated: bool = False,
    oneof_index: int | None = None,
) -> None:
    f = msg.field.add(
        name=name,
        number=number,
        type=ftype,
        label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
    )
    if type_name is not None:
        f.type_name = type_name
    if oneof_index is not None:
        f.oneof_index = oneof_index


def _enum(container, name: str, values: list[str]) -> None:
    """Add an enum whose values are numbered from zero in list order."""
    enum = container.enum_type.add(name=name)
    for number, value in enumerate(values):
        enum.value.add(name=value, number=number)


def _new_file(name: str, package: str, *deps: str) -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto(name=name, package=package, syntax="proto3")
    fdp.dependency.extend(deps)
    return fdp


def _decimal_file() -> descriptor_pb2.FileDescriptorProto:
    fdp = _new_file("helium/decimal.proto", "helium")
    decimal = fdp.message_type.add(name="Decimal")
    _field(decimal, "value", 1, STRING)
    return fdp


def _poc_mobile_file() -> descriptor_pb2.FileDescriptorProto:
    pkg = ".helium.poc_mobile"
    fdp = _new_file("helium/service/poc_mobile.proto", "helium.poc_mobile", "helium/decimal.proto")

    _enum(fdp, "oracle_boosting_assignment", ["a", "b", "c"])
    _enum(fdp, "sp_boosted_hex_status", [
        "sp_boosted_hex_status_eligible",
        "sp_boosted_hex_status_location_score_below_threshold",
        "sp_boosted_hex_status_radio_threshold_not_met",
        "sp_boosted_hex_status_service_provider_ban",
        "sp_boosted_hex_status_average_asserted_distance_over_limit",
    ])
    _enum(fdp, "oracle_boosted_hex_status", [
        "oracle_boosted_hex_status_eligible",
        "oracle_boosted_hex_status_banned",
        "oracle_boosted_hex_status_qualified",
    ])
    _enum(fdp, "service_provider", ["helium_mobile"])
    _enum(fdp, "unallocated_reward_type", [
        "unallocated_reward_type_poc",
        "unallocated_reward_type_discovery_location",
        "unallocated_reward_type_mapper",
        "unallocated_reward_type_service_provider",
        "unallocated_reward_type_oracle",
        "unallocated_reward_type_data",
    ])

    boosted_hex = fdp.message_type.add(name="boosted_hex")
    _field(boosted_hex, "location", 1, UINT64)
    _field(boosted_hex, "multiplier", 2, UINT32)

    speedtest = fdp.message_type.add(name="speedtest")
    _field(speedtest, "upload_speed_bps", 1, UINT64)
    _field(speedtest, "download_speed_bps", 2, UINT64)
    _field(speedtest, "latency_ms", 3, UINT32)
    _field(speedtest, "timestamp", 4, UINT64)

    trust = fdp.message_type.add(name="location_trust_score")
    _field(trust, "meters_to_asserted", 1, UINT64)
    _field(trust, "trust_score", 2, MESSAGE, DECIMAL)

    hex_ = fdp.message_type.add(name="covered_hex")
    _field(hex_, "location", 1, UINT64)
    _field(hex_, "base_coverage_points", 2, MESSAGE, DECIMAL)
    _field(hex_, "boosted_coverage_points", 3, MESSAGE, DECIMAL)
    _field(hex_, "urbanized", 4, ENUM, f"{pkg}.oracle_boosting_assignment")
    _field(hex_, "footfall", 5, ENUM, f"{pkg}.oracle_boosting_assignment")
    _field(hex_, "landtype", 6, ENUM, f"{pkg}.oracle_boosting_assignment")
    _field(hex_, "assignment_multiplier", 7, MESSAGE, DECIMAL)
    _field(hex_, "rank", 8, UINT32)
    _field(hex_, "rank_multiplier", 9, MESSAGE, DECIMAL)
    _field(hex_, "boosted_multiplier", 10, UINT32)

    radio = fdp.message_type.add(name="radio_reward")
    _field(radio, "hotspot_key", 1, BYTES)
    _field(radio, "cbsd_id", 2, STRING)
    _field(radio, "poc_reward", 3, UINT64)
    _field(radio, "coverage_points", 4, UINT64)
    _field(radio, "dc_transfer_reward", 5, UINT64)
    _field(radio, "boosted_hexes", 6, MESSAGE, f"{pkg}.boosted_hex", repeated=True)
    _field(radio, "location_trust_score_multiplier", 8, UINT32)
    _field(radio, "speedtest_multiplier", 9, UINT32)

    v2 = fdp.message_type.add(name="radio_reward_v2")
    _field(v2, "hotspot_key", 1, BYTES)
    _field(v2, "cbsd_id", 2, STRING)
    _field(v2, "base_coverage_points_sum", 3, MESSAGE, DECIMAL)
    _field(v2, "boosted_coverage_points_sum", 4, MESSAGE, DECIMAL)
    _field(v2, "base_reward_shares", 5, MESSAGE, DECIMAL)
    _field(v2, "boosted_reward_shares", 6, MESSAGE, DECIMAL)
    _field(v2, "base_poc_reward", 7, UINT64)
    _field(v2, "boosted_poc_reward", 8, UINT64)
    _field(v2, "seniority_timestamp", 9, UINT64)
    _field(v2, "coverage_object", 10, BYTES)
    _field(v2, "location_trust_score_multiplier", 11, MESSAGE, DECIMAL)
    _field(v2, "location_trust_scores", 12, MESSAGE, f"{pkg}.location_trust_score", repeated=True)
    _field(v2, "speedtest_multiplier", 13, MESSAGE, DECIMAL)
    _field(v2, "speedtests", 14, MESSAGE, f"{pkg}.speedtest", repeated=True)
    _field(v2, "speedtest_average", 15, MESSAGE, f"{pkg}.speedtest")
    _field(v2, "covered_hexes", 16, MESSAGE, f"{pkg}.covered_hex", repeated=True)
    _field(v2, "sp_boosted_hex_status", 17, ENUM, f"{pkg}.sp_boosted_hex_status")
    _field(v2, "oracle_boosted_hex_status", 18, ENUM, f"{pkg}.oracle_boosted_hex_status")

    gateway = fdp.message_type.add(name="gateway_reward")
    _field(gateway, "hotspot_key", 1, BYTES)
    _field(gateway, "dc_transfer_reward", 2, UINT64)

    subscriber = fdp.message_type.add(name="subscriber_reward")
    _field(subscriber, "subscriber_id", 1, BYTES)
    _field(subscriber, "discovery_location_amount", 2, UINT64)

    sp = fdp.message_type.add(name="service_provider_reward")
    _field(sp, "service_provider_id", 1, ENUM, f"{pkg}.service_provider")
    _field(sp, "amount", 2, UINT64)

    promotion = fdp.message_type.add(name="promotion_reward")
    _field(promotion, "entity", 1, STRING)
    _field(promotion, "service_provider_amount", 2, UINT64)
    _field(promotion, "matched_amount", 3, UINT64)

    unallocated = fdp.message_type.add(name="unallocated_reward")
    _field(unallocated, "reward_type", 1, ENUM, f"{pkg}.unallocated_reward_type")
    _field(unallocated, "amount", 2, UINT64)

    share = fdp.message_type.add(name="mobile_reward_share")
    share.oneof_decl.add(name="reward")
    _field(share, "start_period", 1, UINT64)
    _field(share, "end_period", 2, UINT64)
    _field(share, "radio_reward", 3, MESSAGE, f"{pkg}.radio_reward", oneof_index=0)
    _field(share, "gateway_reward", 4, MESSAGE, f"{pkg}.gateway_reward", oneof_index=0)
    _field(share, "subscriber_reward", 5, MESSAGE, f"{pkg}.subscriber_reward", oneof_index=0)
    _field(share, "service_provider_reward", 6, MESSAGE, f"{pkg}.service_provider_reward", oneof_index=0)
    _field(share, "unallocated_reward", 7, MESSAGE, f"{pkg}.unallocated_reward", oneof_index=0)
    _field(share, "radio_reward_v2", 8, MESSAGE, f"{pkg}.radio_reward_v2", oneof_index=0)
    _field(share, "promotion_reward", 9, MESSAGE, f"{pkg}.promotion_reward", oneof_index=0)
    return fdp


def _poc_lora_file() -> descriptor_pb2.FileDescriptorProto:
    pkg = ".helium.poc_lora"
    fdp = _new_file("helium/service/poc_lora.proto", "helium.poc_lora")

    _enum(fdp, "unallocated_reward_type", [
        "unallocated_reward_type_poc",
        "unallocated_reward_type_operation",
        "unallocated_reward_type_oracle",
        "unallocated_reward_type_data",
    ])

    gateway = fdp.message_type.add(name="gateway_reward")
    _field(gateway, "hotspot_key", 1, BYTES)
    _field(gateway, "beacon_amount", 2, UINT64)
    _field(gateway, "witness_amount", 3, UINT64)
    _field(gateway, "dc_transfer_amount", 4, UINT64)

    operational = fdp.message_type.add(name="operational_reward")
    _field(operational, "amount", 1, UINT64)

    unallocated = fdp.message_type.add(name="unallocated_reward")
    _field(unallocated, "reward_type", 1, ENUM, f"{pkg}.unallocated_reward_type")
    _field(unallocated, "amount", 2, UINT64)

    share = fdp.message_type.add(name="iot_reward_share")
    share.oneof_decl.add(name="reward")
    _field(share, "start_period", 1, UINT64)
    _field(share, "end_period", 2, UINT64)
    _field(share, "gateway_reward", 3, MESSAGE, f"{pkg}.gateway_reward", oneof_index=0)
    _field(share, "operational_reward", 4, MESSAGE, f"{pkg}.operational_reward", oneof_index=0)
    _field(share, "unallocated_reward", 5, MESSAGE, f"{pkg}.unallocated_reward", oneof_index=0)
    return fdp


def _reward_manifest_file() -> descriptor_pb2.FileDescriptorProto:
    fdp = _new_file("helium/reward_manifest.proto", "helium")

    _enum(fdp, "mobile_reward_token", ["mobile_reward_token_mobile", "mobile_reward_token_hnt"])
    _enum(fdp, "iot_reward_token", ["iot_reward_token_iot", "iot_reward_token_hnt"])

    mobile = fdp.message_type.add(name="mobile_reward_data")
    _field(mobile, "token", 1, ENUM, ".helium.mobile_reward_token")

    iot = fdp.message_type.add(name="iot_reward_data")
    _field(iot, "token", 1, ENUM, ".helium.iot_reward_token")

    manifest = fdp.message_type.add(name="reward_manifest")
    manifest.oneof_decl.add(name="reward_data")
    _field(manifest, "written_files", 1, STRING, repeated=True)
    _field(manifest, "start_timestamp", 2, UINT64)
    _field(manifest, "end_timestamp", 3, UINT64)
    _field(manifest, "mobile_reward_data", 4, MESSAGE, ".helium.mobile_reward_data", oneof_index=0)
    _field(manifest, "iot_reward_data", 5, MESSAGE, ".helium.iot_reward_data", oneof_index=0)
    _field(manifest, "epoch", 6, UINT64)
    _field(manifest, "price", 7, UINT64)
    return fdp


# ---------------------------------------------------------------------------
# Pool + message classes
# ---------------------------------------------------------------------------

_POOL = descriptor_pool.DescriptorPool()
for _fdp in (_decimal_file(), _poc_mobile_file(), _poc_lora_file(), _reward_manifest_file()):
    _POOL.AddSerializedFile(_fdp.SerializeToString())


def _message_class(full_name: str) -> type[Message]:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(full_name))


MobileRewardShare = _message_class("helium.poc_mobile.mobile_reward_share")
IotRewardShare = _message_class("helium.poc_lora.iot_reward_share")
RewardManifest = _message_class("helium.reward_manifest")


def enum_name(message: Message, field_name: str) -> str:
    """Return the symbolic name of an enum field.

    Numbers this schema does not know fall back to the zero value's name,
    matching how proto3 readers treat unrecognised enum values.
    """
    enum_type = message.DESCRIPTOR.fields_by_name[field_name].enum_type
    number = getattr(message, field_name)
    value = enum_type.values_by_number.get(number)
    if value is None:
        value = enum_type.values_by_number[0]
    return value.name


def enum_number(message_cls: type[Message], field_name: str, value_name: str) -> int:
    """Return the wire number for value_name of an enum field on message_cls."""
    enum_type = message_cls.DESCRIPTOR.fields_by_name[field_name].enum_type
    return enum_type.values_by_name[value_name].number
