"""reward_persist.shared

Shared pieces used by every file type:
  - the error taxonomy surfaced to the per-file caller
  - RunCounters + JSON run report
  - value conversions from wire types to destination column types

Narrowing policy: unsigned wire integers are checked against the signed
destination range instead of being wrapped. An out-of-range value raises
ConversionError while the record is being accumulated, which is before any
statement runs, so the file aborts with nothing written.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import base58

I64_MAX = 2**63 - 1
I64_MIN = -(2**63)
I32_MAX = 2**31 - 1
I32_MIN = -(2**31)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class DecodeError(Exception):
    """Raised when a file frame or its payload cannot be decoded."""


class ConversionError(ValueError):
    """Raised when a decoded value does not fit its destination column."""


class ChunkWriteError(Exception):
    """Raised when one chunked INSERT statement fails."""

    def __init__(self, table: str, chunk_index: int, start: int, end: int, cause: Exception) -> None:
        super().__init__(
            f"insert into {table} failed at chunk {chunk_index} "
            f"(rows {start}..{end - 1}): {cause}"
        )
        self.table = table
        self.chunk_index = chunk_index
        self.start = start
        self.end = end


class KeyAssociationError(Exception):
    """Raised when a parent chunk returns a different number of ids than rows submitted."""

    def __init__(self, table: str, submitted: int, returned: int) -> None:
        super().__init__(
            f"{table}: submitted {submitted} rows but received {returned} generated ids"
        )
        self.table = table
        self.submitted = submitted
        self.returned = returned


class ProvisioningError(Exception):
    """Raised when destination tables cannot be created."""


class FileImportError(Exception):
    """Raised when a single file fails; carries the file key."""

    def __init__(self, key: str, cause: Exception) -> None:
        super().__init__(f"{key}: {type(cause).__name__}: {cause}")
        self.key = key
        self.cause = cause


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    files_listed: int = 0
    files_processed: int = 0
    records_decoded: int = 0
    records_dropped: int = 0
    statements_executed: int = 0
    rows_inserted: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def add_rows(self, written: dict[str, int]) -> None:
        for table, count in written.items():
            self.rows_inserted[table] = self.rows_inserted.get(table, 0) + count

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_listed": self.files_listed,
            "files_processed": self.files_processed,
            "records_decoded": self.records_decoded,
            "records_dropped": self.records_dropped,
            "statements_executed": self.statements_executed,
            "rows_inserted": dict(sorted(self.rows_inserted.items())),
            "warnings": self.warnings[:50],
        }


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------

def to_i64(value: int, field_name: str) -> int:
    if not I64_MIN <= value <= I64_MAX:
        raise ConversionError(f"{field_name}={value} does not fit a signed 64-bit column")
    return value


def to_i32(value: int, field_name: str) -> int:
    if not I32_MIN <= value <= I32_MAX:
        raise ConversionError(f"{field_name}={value} does not fit a signed 32-bit column")
    return value


def to_datetime(seconds: int) -> datetime:
    """Seconds since the Unix epoch as an aware UTC datetime."""
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ConversionError(f"timestamp {seconds} is out of range") from exc


def to_datetime_ms(millis: int) -> datetime:
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ConversionError(f"timestamp {millis}ms is out of range") from exc


def to_uuid(raw: bytes, field_name: str) -> uuid.UUID:
    if len(raw) != 16:
        raise ConversionError(f"{field_name} must be 16 bytes, got {len(raw)}")
    return uuid.UUID(bytes=raw)


def public_key_to_string(raw: bytes) -> str:
    """Render a binary public key in its base58check text form (version byte 0)."""
    return base58.b58encode_check(b"\x00" + raw).decode("ascii")


def parse_decimal(value: str) -> Decimal:
    """Parse a wire decimal string; an empty string means zero."""
    if not value:
        return Decimal(0)
    try:
        parsed = Decimal(value)
    except InvalidOperation as exc:
        raise DecodeError(f"invalid decimal {value!r}") from exc
    if not parsed.is_finite():
        raise DecodeError(f"non-finite decimal {value!r}")
    return parsed


def empty_to_none(value: str) -> str | None:
    return value if value else None


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    report_dir: Path,
    source: dict[str, str | None],
    counters: RunCounters,
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
