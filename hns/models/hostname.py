"""
Hostname, reservation and DNS data models for the Hostname Naming Service.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class HostnameCandidate:
    """An assembled, not yet reserved hostname.

    ``parts`` holds (group name, rendered value) in template order; joining the
    values gives ``hostname``.
    """
    template_id: int
    hostname: str
    parts: Tuple[Tuple[str, str], ...]
    sequence_num: Optional[int] = None

    @property
    def params(self) -> Dict[str, str]:
        return {name: value for name, value in self.parts}


@dataclass(frozen=True)
class Reservation:
    """A committed (template, sequence) pair. Immutable once created."""
    id: str
    template_id: int
    sequence_num: int
    hostname: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "sequence_num": self.sequence_num,
            "hostname": self.hostname,
            "created_at": isoformat(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reservation":
        created = datetime.strptime(data["created_at"], "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
        return cls(
            id=str(data["id"]),
            template_id=int(data["template_id"]),
            sequence_num=int(data["sequence_num"]),
            hostname=str(data["hostname"]),
            created_at=created,
        )


@dataclass
class DNSVerificationResult:
    hostname: str
    exists: bool
    ip_address: Optional[str] = None
    verified_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "exists": self.exists,
            "ip_address": self.ip_address,
            "verified_at": isoformat(self.verified_at),
        }


@dataclass
class ScanEntry:
    """One scanned hostname. ``exists`` is None when the lookup failed."""
    hostname: str
    sequence_num: int
    exists: Optional[bool] = None
    ip_address: Optional[str] = None
    verified_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "sequence_num": self.sequence_num,
            "exists": self.exists,
            "ip_address": self.ip_address,
            "verified_at": isoformat(self.verified_at),
            "error": self.error,
        }


@dataclass
class ScanReport:
    template_id: int
    template_name: str
    results: List[ScanEntry] = None
    elapsed: float = 0.0
    cancelled: bool = False

    def __post_init__(self):
        """Initialize mutable defaults."""
        if self.results is None:
            self.results = []

    @property
    def total_hostnames(self) -> int:
        return len(self.results)

    @property
    def existing_hostnames(self) -> int:
        return sum(1 for entry in self.results if entry.exists)

    @property
    def failed_hostnames(self) -> int:
        return sum(1 for entry in self.results if entry.error is not None)

    @property
    def scan_duration(self) -> str:
        return f"{self.elapsed:.3f}s"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "template_name": self.template_name,
            "total_hostnames": self.total_hostnames,
            "existing_hostnames": self.existing_hostnames,
            "failed_hostnames": self.failed_hostnames,
            "results": [entry.to_dict() for entry in self.results],
            "scan_duration": self.scan_duration,
            "cancelled": self.cancelled,
        }


@dataclass
class SequenceUsage:
    """Reservation statistics for one template's sequence group."""
    template_id: int
    total_sequences: int
    used_sequences: int
    next_sequence: int
    highest_sequence: Optional[int] = None
    lowest_sequence: Optional[int] = None

    @property
    def available_sequences(self) -> int:
        return max(0, self.total_sequences - self.next_sequence + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "total_sequences": self.total_sequences,
            "used_sequences": self.used_sequences,
            "next_sequence": self.next_sequence,
            "highest_sequence": self.highest_sequence,
            "lowest_sequence": self.lowest_sequence,
            "available_sequences": self.available_sequences,
        }


@dataclass
class SequenceRange:
    """Outcome of probing DNS for the sequence values a template has in use."""
    template_id: int
    lowest_sequence: Optional[int] = None
    highest_sequence: Optional[int] = None
    lookups: int = 0

    @property
    def found(self) -> bool:
        return self.lowest_sequence is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "found": self.found,
            "lowest_sequence": self.lowest_sequence,
            "highest_sequence": self.highest_sequence,
            "lookups": self.lookups,
        }
