"""Unit tests for file discovery (reward_persist.file_store)."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from reward_persist.file_store import FileInfo, GcsFileStore, LocalFileStore


def _ts(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class TestFileInfo:
    def test_parse_gz(self):
        info = FileInfo.from_key("mobile_reward_share.1717200000000.gz", size=10)
        assert info.prefix == "mobile_reward_share"
        assert info.timestamp == _ts(1717200000000)
        assert info.compressed
        assert info.size == 10

    def test_parse_plain_with_path(self):
        info = FileInfo.from_key("exports/reward_manifest.5")
        assert info.prefix == "reward_manifest"
        assert not info.compressed

    @pytest.mark.parametrize("key", ["readme.txt", "mobile_reward_share", "mobile_reward_share.abc.gz"])
    def test_rejects_other_names(self, key):
        with pytest.raises(ValueError):
            FileInfo.from_key(key)

    def test_orders_by_timestamp(self):
        a = FileInfo.from_key("x.2")
        b = FileInfo.from_key("x.10")
        assert sorted([b, a]) == [a, b]


class TestLocalFileStore:
    def _store(self, tmp_path) -> LocalFileStore:
        for name in [
            "mobile_reward_share.3000.gz",
            "mobile_reward_share.1000.gz",
            "mobile_reward_share.2000",
            "iot_reward_share.1500.gz",
            "notes.txt",
        ]:
            (tmp_path / name).write_bytes(b"")
        (tmp_path / "mobile_reward_share.9999").mkdir()
        return LocalFileStore(tmp_path)

    def test_lists_prefix_sorted(self, tmp_path):
        keys = [i.key for i in self._store(tmp_path).list_all("mobile_reward_share")]
        assert keys == [
            "mobile_reward_share.1000.gz",
            "mobile_reward_share.2000",
            "mobile_reward_share.3000.gz",
        ]

    def test_bounds_are_exclusive(self, tmp_path):
        infos = self._store(tmp_path).list_all("mobile_reward_share", after=_ts(1000), before=_ts(3000))
        assert [i.key for i in infos] == ["mobile_reward_share.2000"]

    def test_open_reads_bytes(self, tmp_path):
        (tmp_path / "reward_manifest.1").write_bytes(b"abc")
        store = LocalFileStore(tmp_path)
        (info,) = store.list_all("reward_manifest")
        with store.open(info) as fh:
            assert fh.read() == b"abc"


class TestGcsFileStore:
    def test_list_uses_prefix_and_filters(self):
        client = MagicMock()
        blobs = []
        for name in ["mobile_reward_share.2000.gz", "mobile_reward_share.1000.gz", "mobile_reward_share.x"]:
            blob = MagicMock()
            blob.name = name
            blob.size = 5
            blobs.append(blob)
        client.list_blobs.return_value = blobs
        store = GcsFileStore("bucket", client=client)

        infos = store.list_all("mobile_reward_share", after=_ts(1000))
        client.list_blobs.assert_called_once_with("bucket", prefix="mobile_reward_share.")
        assert [i.key for i in infos] == ["mobile_reward_share.2000.gz"]

    def test_open_uses_blob_reader(self):
        client = MagicMock()
        store = GcsFileStore("bucket", client=client)
        info = FileInfo.from_key("mobile_reward_share.1000.gz")
        with store.open(info):
            pass
        client.bucket.assert_called_once_with("bucket")
        client.bucket.return_value.blob.assert_called_once_with("mobile_reward_share.1000.gz")
        client.bucket.return_value.blob.return_value.open.assert_called_once_with("rb")

    def test_describe(self):
        assert GcsFileStore("b", client=MagicMock()).describe() == {"local_dir": None, "gcs_bucket": "b"}
