"""
Lease record dan timestamp helpers.

Record disimpan di store dengan struktur:

    {
        "_id": "lock name",
        "lockUntil": "2017-01-07T16:52:04.071Z",
        "lockedAt": "2017-01-07T16:52:03.932Z",
        "lockedBy": "host name"
    }

lockedAt dan lockedBy hanya untuk troubleshooting, tidak dibaca oleh protocol.
Timestamp format fixed-width sehingga urutan string == urutan waktu.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ID = "_id"
LOCK_UNTIL = "lockUntil"
LOCKED_AT = "lockedAt"
LOCKED_BY = "lockedBy"

_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"


def truncate_to_millis(value: datetime) -> datetime:
    """Buang presisi di bawah millisecond dan normalize ke UTC"""
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_iso_string(value: datetime) -> str:
    """datetime -> 'YYYY-MM-DDTHH:MM:SS.fffZ'"""
    value = truncate_to_millis(value)
    return f"{value.strftime(_ISO_FORMAT)}.{value.microsecond // 1000:03d}Z"


def from_iso_string(value: str) -> datetime:
    """Parse timestamp hasil to_iso_string (juga menerima offset '+00:00')"""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class LeaseRecord:
    """Persisted state untuk satu lock name"""
    name: str
    lock_until: datetime
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None

    def is_locked(self, now: datetime) -> bool:
        return now < self.lock_until

    def to_dict(self) -> Dict[str, Any]:
        """Convert ke dictionary untuk JSON / store serialization"""
        data = {
            ID: self.name,
            LOCK_UNTIL: to_iso_string(self.lock_until),
        }
        if self.locked_at is not None:
            data[LOCKED_AT] = to_iso_string(self.locked_at)
        if self.locked_by is not None:
            data[LOCKED_BY] = self.locked_by
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LeaseRecord':
        locked_at = data.get(LOCKED_AT)
        return cls(
            name=data[ID],
            lock_until=from_iso_string(data[LOCK_UNTIL]),
            locked_at=from_iso_string(locked_at) if locked_at else None,
            locked_by=data.get(LOCKED_BY)
        )

    def __repr__(self):
        return (f"LeaseRecord({self.name}, until={to_iso_string(self.lock_until)}, "
                f"by={self.locked_by})")
