"""leaselock - distributed locks leased through Redis key expiry."""

from .exceptions import (
    LeaseLockError,
    StoreError,
    StoreUnavailableError,
    AuthenticationError,
    LockError,
    NotHeldError,
    WrongHolderError,
    LockHeldError,
    ConfigurationError,
)
from .keepalive import KeepAlive
from .lock import DEFAULT_LEASE, Lock
from .models import (
    LockStatus,
    LockInfo,
    ReleaseStatus,
    ReleaseResult,
)
from .reentrant import ReentrantLock
from .retry import acquire_with_retry
from .store import Store, RedisStore, HttpStore

__version__ = "1.0.0"
__all__ = [
    "Lock",
    "ReentrantLock",
    "KeepAlive",
    "DEFAULT_LEASE",
    "acquire_with_retry",
    "Store",
    "RedisStore",
    "HttpStore",
    "LeaseLockError",
    "StoreError",
    "StoreUnavailableError",
    "AuthenticationError",
    "LockError",
    "NotHeldError",
    "WrongHolderError",
    "LockHeldError",
    "ConfigurationError",
    "LockStatus",
    "LockInfo",
    "ReleaseStatus",
    "ReleaseResult",
]
