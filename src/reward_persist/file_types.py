"""reward_persist.file_types

Static registry of the file types this importer understands.

Each handler exposes:
  prefix        key prefix of its files in the store
  table_names   destination tables it provisions
  decode()      lazy record iterator over one file stream
  ensure_tables()
  new_batch()   a fresh per-file accumulator with add() / write()
"""

from __future__ import annotations

import enum

from reward_persist.iot_reward_share import IotRewardShareFileType
from reward_persist.mobile_reward_share import MobileRewardShareFileType
from reward_persist.reward_manifest import RewardManifestFileType


class FileType(str, enum.Enum):
    MOBILE_REWARD_SHARE = "mobile_reward_share"
    IOT_REWARD_SHARE = "iot_reward_share"
    REWARD_MANIFEST = "reward_manifest"


_HANDLERS = {
    FileType.MOBILE_REWARD_SHARE: MobileRewardShareFileType(),
    FileType.IOT_REWARD_SHARE: IotRewardShareFileType(),
    FileType.REWARD_MANIFEST: RewardManifestFileType(),
}


def handler_for(file_type: FileType | str):
    """Return the handler for file_type (enum member or its string value).

    Raises:
        ValueError: If file_type is not a known file type.
    """
    return _HANDLERS[FileType(file_type)]
