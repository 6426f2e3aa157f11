"""Unit tests for reward_persist.shared."""

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import base58
import pytest

from reward_persist.shared import (
    I32_MAX,
    I64_MAX,
    ChunkWriteError,
    ConversionError,
    DecodeError,
    FileImportError,
    KeyAssociationError,
    RunCounters,
    empty_to_none,
    parse_decimal,
    public_key_to_string,
    to_datetime,
    to_datetime_ms,
    to_i32,
    to_i64,
    to_uuid,
    write_run_report,
)


# ---------------------------------------------------------------------------
# Integer narrowing
# ---------------------------------------------------------------------------

class TestNarrowing:
    def test_i64_in_range(self):
        assert to_i64(I64_MAX, "x") == I64_MAX

    def test_i64_overflow_raises(self):
        with pytest.raises(ConversionError, match="amount"):
            to_i64(I64_MAX + 1, "amount")

    def test_i32_in_range(self):
        assert to_i32(0, "x") == 0

    def test_i32_overflow_raises(self):
        with pytest.raises(ConversionError):
            to_i32(I32_MAX + 1, "latency_ms")

    def test_conversion_error_is_value_error(self):
        assert issubclass(ConversionError, ValueError)


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

class TestTimestamps:
    def test_seconds_to_utc(self):
        assert to_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_millis_to_utc(self):
        assert to_datetime_ms(1_500) == datetime(1970, 1, 1, 0, 0, 1, 500_000, tzinfo=timezone.utc)

    def test_out_of_range_raises(self):
        with pytest.raises(ConversionError):
            to_datetime(2**63)


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

class TestIdentifiers:
    def test_uuid_from_16_bytes(self):
        raw = bytes(range(16))
        assert to_uuid(raw, "coverage_object") == uuid.UUID(bytes=raw)

    def test_uuid_wrong_length(self):
        with pytest.raises(ConversionError, match="coverage_object"):
            to_uuid(b"\x01\x02", "coverage_object")

    def test_public_key_round_trips_through_b58check(self):
        raw = bytes(range(1, 34))
        text = public_key_to_string(raw)
        assert base58.b58decode_check(text) == b"\x00" + raw


# ---------------------------------------------------------------------------
# Decimals / strings
# ---------------------------------------------------------------------------

class TestParseDecimal:
    def test_plain(self):
        assert parse_decimal("12.25") == Decimal("12.25")

    def test_empty_is_zero(self):
        assert parse_decimal("") == Decimal(0)

    def test_invalid(self):
        with pytest.raises(DecodeError):
            parse_decimal("twelve")

    def test_nan_rejected(self):
        with pytest.raises(DecodeError):
            parse_decimal("NaN")


def test_empty_to_none():
    assert empty_to_none("") is None
    assert empty_to_none("abc") == "abc"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:
    def test_chunk_write_error_names_range(self):
        err = ChunkWriteError("speedtests", 2, 200, 300, RuntimeError("boom"))
        assert "speedtests" in str(err)
        assert "rows 200..299" in str(err)
        assert err.chunk_index == 2

    def test_key_association_error(self):
        err = KeyAssociationError("mobile_radio_rewards_v2", 5, 4)
        assert err.submitted == 5
        assert err.returned == 4

    def test_file_import_error_carries_key(self):
        cause = DecodeError("bad frame")
        err = FileImportError("mobile_reward_share.1.gz", cause)
        assert err.key == "mobile_reward_share.1.gz"
        assert err.cause is cause
        assert "DecodeError" in str(err)


# ---------------------------------------------------------------------------
# RunCounters + report
# ---------------------------------------------------------------------------

class TestRunCounters:
    def test_add_rows_accumulates(self):
        c = RunCounters()
        c.add_rows({"speedtests": 2, "mobile_radio_rewards_v2": 1})
        c.add_rows({"speedtests": 3})
        assert c.rows_inserted == {"speedtests": 5, "mobile_radio_rewards_v2": 1}

    def test_report_written(self, tmp_path):
        c = RunCounters(files_listed=2, files_processed=1)
        path = write_run_report(
            "run-1", "2024-06-01T00:00:00", "import", False, tmp_path,
            {"gcs_bucket": "b"}, c,
        )
        assert path == tmp_path / "run-1.json"
        report = json.loads(path.read_text())
        assert report["gcs_bucket"] == "b"
        assert report["counters"]["files_processed"] == 1
        assert report["dry_run"] is False
