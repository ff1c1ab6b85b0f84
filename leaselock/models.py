"""leaselock data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LockStatus(str, Enum):
    """Lock status enumeration."""
    FREE = "free"
    HELD = "held"


class ReleaseStatus(str, Enum):
    """Outcome of a successful release."""
    RELEASED = "released"
    STILL_HELD = "still_held"


@dataclass
class LockInfo:
    """Snapshot of a lock record as seen by the store."""
    name: str
    status: LockStatus
    holder_id: Optional[str]
    count: int
    ttl_ms: Optional[int]


@dataclass
class ReleaseResult:
    """Result of a release call.

    ``remaining`` is the nesting count left on a reentrant lock; it is
    always 0 once the record has been deleted.
    """
    status: ReleaseStatus
    remaining: int = 0

    @property
    def released(self) -> bool:
        return self.status is ReleaseStatus.RELEASED
