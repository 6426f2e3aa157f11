"""Unit tests for the file type registry."""

import pytest

from reward_persist.file_types import FileType, handler_for
from reward_persist.iot_reward_share import IotRewardShareBatch
from reward_persist.mobile_reward_share import MobileRewardShareBatch
from reward_persist.reward_manifest import RewardManifestBatch


@pytest.mark.parametrize(
    "file_type, batch_cls",
    [
        (FileType.MOBILE_REWARD_SHARE, MobileRewardShareBatch),
        (FileType.IOT_REWARD_SHARE, IotRewardShareBatch),
        (FileType.REWARD_MANIFEST, RewardManifestBatch),
    ],
)
def test_handler_per_file_type(file_type, batch_cls):
    handler = handler_for(file_type)
    assert handler.prefix == file_type.value
    assert isinstance(handler.new_batch(), batch_cls)
    assert handler.table_names


def test_lookup_by_string():
    assert handler_for("reward_manifest").table_names == ("reward_manifests",)


def test_unknown_file_type():
    with pytest.raises(ValueError):
        handler_for("price_report")


def test_new_batch_is_fresh_each_time():
    handler = handler_for(FileType.MOBILE_REWARD_SHARE)
    assert handler.new_batch() is not handler.new_batch()
