"""Tests for the issuance index."""

from datetime import datetime, timezone

import pytest

from ovpn_manager.models.client import CredentialStatus, IndexRecord
from ovpn_manager.services.index_service import (
    IssuanceIndex,
    format_index_time,
    normalize_serial,
    parse_index_time,
)

SAMPLE_INDEX = (
    "V\t270101000000Z\t\t01\tunknown\t/CN=my-vpn-server\n"
    "R\t270101000000Z\t250301120000Z,superseded\t02\tunknown\t/CN=alice\n"
    "V\t270101000000Z\t\t03\tunknown\t/CN=alice\n"
    "R\t270101000000Z\t250302120000Z\t04\tunknown\t/CN=bob\n"
)


@pytest.mark.unit
class TestIndexHelpers:
    """Test serial and timestamp helpers."""

    def test_normalize_serial_pads_to_even_length(self):
        """Test serials are uppercase and even length."""
        assert normalize_serial(10) == "0A"
        assert normalize_serial("abc") == "0ABC"
        assert normalize_serial("0x1f") == "1F"
        assert normalize_serial("0F") == "0F"

    def test_utc_time_before_2050(self):
        """Test UTCTime spelling for dates before 2050."""
        value = datetime(2027, 1, 1, 12, 30, 5, tzinfo=timezone.utc)
        assert format_index_time(value) == "270101123005Z"
        assert parse_index_time("270101123005Z") == value

    def test_generalized_time_from_2050(self):
        """Test GeneralizedTime spelling from 2050 on."""
        value = datetime(2051, 6, 1, tzinfo=timezone.utc)
        assert format_index_time(value) == "20510601000000Z"
        assert parse_index_time("20510601000000Z") == value


@pytest.mark.unit
class TestIssuanceIndex:
    """Test index parsing and queries."""

    def test_parse_records(self):
        """Test parsing keeps every record in file order."""
        index = IssuanceIndex.parse(SAMPLE_INDEX)

        assert len(index) == 4
        assert [r.serial for r in index] == ["01", "02", "03", "04"]
        assert [r.identity for r in index] == ["my-vpn-server", "alice", "alice", "bob"]

    def test_current_returns_issued_record(self):
        """Test current() ignores revoked history."""
        index = IssuanceIndex.parse(SAMPLE_INDEX)

        assert index.current("alice").serial == "03"
        assert index.current("bob") is None
        assert index.current("carol") is None
        assert len(index.history("alice")) == 2

    def test_revocation_fields(self):
        """Test revocation time and reason are parsed."""
        index = IssuanceIndex.parse(SAMPLE_INDEX)

        superseded = index.by_serial("02")
        assert superseded.status == CredentialStatus.REVOKED
        assert superseded.revocation_reason == "superseded"
        assert superseded.revoked_at == datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert index.by_serial(4).revocation_reason is None

    def test_serialize_round_trip(self):
        """Test serialize reproduces the OpenSSL format."""
        assert IssuanceIndex.parse(SAMPLE_INDEX).serialize() == SAMPLE_INDEX

    def test_malformed_line_raises(self):
        """Test a line without six fields is rejected."""
        with pytest.raises(ValueError, match="Malformed index line 2"):
            IssuanceIndex.parse("V\t270101000000Z\t\t01\tunknown\t/CN=a\nV\t270101000000Z\t02\n")

    def test_blank_lines_ignored(self):
        """Test empty content and blank lines parse to nothing."""
        assert len(IssuanceIndex.parse("")) == 0
        assert len(IssuanceIndex.parse("\n\n")) == 0

    def test_append_rejects_second_issued_record(self):
        """Test at most one Issued record per identity."""
        index = IssuanceIndex.parse(SAMPLE_INDEX)
        record = IndexRecord(
            status=CredentialStatus.ISSUED,
            expires_at=datetime(2027, 1, 1, tzinfo=timezone.utc),
            serial="05",
            subject="/CN=alice",
        )

        with pytest.raises(ValueError, match="already has an Issued record"):
            index.append(record)

    def test_append_rejects_duplicate_serial(self):
        """Test serials are unique."""
        index = IssuanceIndex.parse(SAMPLE_INDEX)
        record = IndexRecord(
            status=CredentialStatus.ISSUED,
            expires_at=datetime(2027, 1, 1, tzinfo=timezone.utc),
            serial="04",
            subject="/CN=carol",
        )

        with pytest.raises(ValueError, match="already present"):
            index.append(record)

    def test_mark_revoked(self):
        """Test flipping an Issued record to Revoked."""
        index = IssuanceIndex.parse(SAMPLE_INDEX)
        when = datetime(2025, 4, 1, tzinfo=timezone.utc)

        index.mark_revoked("03", when, "keyCompromise")

        assert index.current("alice") is None
        assert index.by_serial("03").revoked_at == when
        assert "250401000000Z,keyCompromise\t03" in index.serialize()

    def test_mark_revoked_unknown_serial(self):
        """Test revoking a serial that is not Issued fails."""
        index = IssuanceIndex.parse(SAMPLE_INDEX)

        with pytest.raises(ValueError, match="No Issued record"):
            index.mark_revoked("02", datetime.now(timezone.utc))

    def test_load_missing_file_is_empty(self, tmp_path):
        """Test a missing index file loads as an empty index."""
        assert len(IssuanceIndex.load(tmp_path / "index.txt")) == 0

    def test_save_is_owner_only(self, tmp_path):
        """Test the saved index has mode 0600."""
        path = tmp_path / "index.txt"
        IssuanceIndex.parse(SAMPLE_INDEX).save(path)

        assert path.read_text() == SAMPLE_INDEX
        assert path.stat().st_mode & 0o777 == 0o600
