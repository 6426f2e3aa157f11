"""reward_persist.file_store

File discovery and reading.

Reward files are named ``<prefix>.<timestamp_ms>`` with an optional ``.gz``
suffix, e.g. ``mobile_reward_share.1717200000000.gz``. The timestamp is the
file's position in the stream of files for its prefix; listings are ordered
by it.

Two stores share the same interface:
  LocalFileStore  a directory on disk (tests / replaying downloaded files)
  GcsFileStore    a Google Cloud Storage bucket
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from reward_persist.shared import to_datetime_ms

_KEY_RE = re.compile(r"^(?P<prefix>[A-Za-z0-9_]+)\.(?P<timestamp>\d+)(?P<gz>\.gz)?$")


@dataclass(frozen=True, order=True)
class FileInfo:
    timestamp: datetime
    key: str
    prefix: str
    size: int = 0

    @classmethod
    def from_key(cls, key: str, size: int = 0) -> FileInfo:
        """Parse a store key; only the final path segment carries the name.

        Raises:
            ValueError: If the name is not ``<prefix>.<timestamp_ms>[.gz]``.
        """
        name = key.rsplit("/", 1)[-1]
        m = _KEY_RE.match(name)
        if m is None:
            raise ValueError(f"not a reward file key: {key!r}")
        return cls(
            timestamp=to_datetime_ms(int(m.group("timestamp"))),
            key=key,
            prefix=m.group("prefix"),
            size=size,
        )

    @property
    def compressed(self) -> bool:
        return self.key.endswith(".gz")


def _select(
    infos: list[FileInfo], prefix: str, after: datetime | None, before: datetime | None
) -> list[FileInfo]:
    selected = [
        info for info in infos
        if info.prefix == prefix
        and (after is None or info.timestamp > after)
        and (before is None or info.timestamp < before)
    ]
    return sorted(selected)


def _try_parse(key: str, size: int) -> FileInfo | None:
    try:
        return FileInfo.from_key(key, size)
    except ValueError:
        return None


@dataclass
class LocalFileStore:
    """Reward files in one local directory (not recursive)."""

    base_dir: Path

    def list_all(
        self, prefix: str, after: datetime | None = None, before: datetime | None = None
    ) -> list[FileInfo]:
        infos = []
        for path in self.base_dir.iterdir():
            if not path.is_file():
                continue
            info = _try_parse(path.name, path.stat().st_size)
            if info is not None:
                infos.append(info)
        return _select(infos, prefix, after, before)

    @contextmanager
    def open(self, info: FileInfo) -> Iterator[BinaryIO]:
        with open(self.base_dir / info.key, "rb") as fh:
            yield fh

    def describe(self) -> dict[str, str | None]:
        return {"local_dir": str(self.base_dir), "gcs_bucket": None}


class GcsFileStore:
    """Reward files in a GCS bucket, listed by key prefix."""

    def __init__(self, bucket_name: str, client=None) -> None:
        self.bucket_name = bucket_name
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from google.cloud import storage  # type: ignore[import-untyped]

            self._client = storage.Client()
        return self._client

    def list_all(
        self, prefix: str, after: datetime | None = None, before: datetime | None = None
    ) -> list[FileInfo]:
        infos = []
        for blob in self.client.list_blobs(self.bucket_name, prefix=f"{prefix}."):
            info = _try_parse(blob.name, blob.size or 0)
            if info is not None:
                infos.append(info)
        return _select(infos, prefix, after, before)

    @contextmanager
    def open(self, info: FileInfo) -> Iterator[BinaryIO]:
        blob = self.client.bucket(self.bucket_name).blob(info.key)
        with blob.open("rb") as fh:
            yield fh

    def describe(self) -> dict[str, str | None]:
        return {"local_dir": None, "gcs_bucket": self.bucket_name}
