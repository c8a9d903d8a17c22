"""Issuance index (OpenSSL CA database) service."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from ovpn_manager.models.client import CredentialStatus, IndexRecord
from ovpn_manager.utils.file_utils import FileUtils

logger = logging.getLogger("ovpn_manager")


def normalize_serial(serial) -> str:
    """
    Normalize a serial number to the index.txt spelling.

    OpenSSL requires uppercase, even-length hex serial numbers in index.txt.

    Args:
        serial: Integer or hex string

    Returns:
        Uppercase even-length hex string
    """
    if isinstance(serial, int):
        text = format(serial, "X")
    else:
        text = serial.strip().upper()
        if text.startswith("0X"):
            text = text[2:]
    if len(text) % 2 != 0:
        text = "0" + text
    return text


def format_index_time(value: datetime) -> str:
    """Format a datetime as ASN.1 UTCTime (GeneralizedTime from 2050 on)."""
    value = value.astimezone(timezone.utc)
    if value.year >= 2050:
        return value.strftime("%Y%m%d%H%M%SZ")
    return value.strftime("%y%m%d%H%M%SZ")


def parse_index_time(value: str) -> datetime:
    """Parse an index.txt timestamp into an aware UTC datetime."""
    fmt = "%Y%m%d%H%M%SZ" if len(value) == 15 else "%y%m%d%H%M%SZ"
    return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)


class IssuanceIndex:
    """
    In-memory view of index.txt, keyed by identity.

    The index is parsed once from a single read of the file and written back
    through serialize(), so the rest of the code never touches its text format.
    Records keep their file order; one identity may own several records (its
    revocation history) but at most one Issued record.
    """

    def __init__(self, records: Optional[List[IndexRecord]] = None):
        self._records: List[IndexRecord] = []
        self._by_identity: Dict[str, List[IndexRecord]] = {}
        for record in records or []:
            self._add(record)

    def _add(self, record: IndexRecord) -> None:
        self._records.append(record)
        if record.identity is not None:
            self._by_identity.setdefault(record.identity, []).append(record)

    @classmethod
    def parse(cls, text: str) -> "IssuanceIndex":
        """
        Parse index.txt content.

        Args:
            text: Full file content

        Returns:
            Parsed index

        Raises:
            ValueError: If a line does not have the six tab-separated fields
        """
        records = []
        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            fields = line.split("\t")
            if len(fields) != 6:
                raise ValueError(f"Malformed index line {number}: expected 6 fields, got {len(fields)}")

            status, expiry, revocation, serial, filename, subject = fields
            revoked_at = None
            reason = None
            if revocation:
                stamp, _, reason_text = revocation.partition(",")
                revoked_at = parse_index_time(stamp)
                reason = reason_text or None

            records.append(
                IndexRecord(
                    status=CredentialStatus(status),
                    expires_at=parse_index_time(expiry),
                    revoked_at=revoked_at,
                    revocation_reason=reason,
                    serial=normalize_serial(serial),
                    filename=filename or "unknown",
                    subject=subject,
                )
            )
        return cls(records)

    @classmethod
    def load(cls, path: Path) -> "IssuanceIndex":
        """Load the index with a single read; a missing file is an empty index."""
        if not path.exists():
            return cls()
        return cls.parse(FileUtils.read_binary_file(path).decode("utf-8"))

    def serialize(self) -> str:
        """Render the index in OpenSSL CA database format."""
        lines = []
        for record in self._records:
            revocation = ""
            if record.revoked_at is not None:
                revocation = format_index_time(record.revoked_at)
                if record.revocation_reason:
                    revocation += f",{record.revocation_reason}"
            lines.append(
                "\t".join(
                    [
                        record.status.value,
                        format_index_time(record.expires_at),
                        revocation,
                        record.serial,
                        record.filename,
                        record.subject,
                    ]
                )
            )
        return "".join(f"{line}\n" for line in lines)

    def save(self, path: Path) -> None:
        """Atomically replace index.txt with the serialized index."""
        FileUtils.write_file(path, self.serialize(), mode=0o600)
        logger.debug(f"Saved issuance index with {len(self._records)} records")

    def __iter__(self) -> Iterator[IndexRecord]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def history(self, identity: str) -> List[IndexRecord]:
        """All records for an identity, oldest first."""
        return list(self._by_identity.get(identity, []))

    def current(self, identity: str) -> Optional[IndexRecord]:
        """The Issued record for an identity, if any."""
        for record in reversed(self._by_identity.get(identity, [])):
            if record.is_issued:
                return record
        return None

    def by_serial(self, serial) -> Optional[IndexRecord]:
        wanted = normalize_serial(serial)
        for record in self._records:
            if record.serial == wanted:
                return record
        return None

    def issued(self) -> List[IndexRecord]:
        return [r for r in self._records if r.is_issued]

    def revoked(self) -> List[IndexRecord]:
        return [r for r in self._records if r.status == CredentialStatus.REVOKED]

    def append(self, record: IndexRecord) -> None:
        """
        Append a record.

        Raises:
            ValueError: If the record is Issued and its identity already has an
                Issued record, or if its serial is already present
        """
        if self.by_serial(record.serial) is not None:
            raise ValueError(f"Serial {record.serial} already present in index")
        if record.is_issued and record.identity and self.current(record.identity) is not None:
            raise ValueError(f"Identity {record.identity} already has an Issued record")
        self._add(record)

    def mark_revoked(self, serial, revoked_at: datetime, reason: Optional[str] = None) -> IndexRecord:
        """
        Flip an Issued record to Revoked in place.

        Raises:
            ValueError: If the serial is unknown or not Issued
        """
        record = self.by_serial(serial)
        if record is None or not record.is_issued:
            raise ValueError(f"No Issued record with serial {normalize_serial(serial)}")
        record.status = CredentialStatus.REVOKED
        record.revoked_at = revoked_at
        record.revocation_reason = reason if reason and reason != "unspecified" else None
        return record
