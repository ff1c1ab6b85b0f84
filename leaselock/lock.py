"""Exclusive lease lock and the handle state shared by both lock variants."""

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import structlog

from . import scripts
from .exceptions import (
    ConfigurationError,
    LockError,
    LockHeldError,
    NotHeldError,
    WrongHolderError,
)
from .keepalive import KeepAlive
from .models import LockInfo, LockStatus, ReleaseResult, ReleaseStatus
from .store import Store, as_store

logger = structlog.get_logger(__name__)

DEFAULT_LEASE = 10.0


class BaseLock(ABC):
    """A handle on a named lock record kept alive by a renewal thread.

    The handle generates its holder token once and reuses it for every
    acquire/release cycle. Its mutex only orders calls made through this
    handle; exclusion between processes comes from the store scripts.
    """

    _renew_script: str = ""
    _inspect_script: str = ""

    def __init__(
        self,
        store: Any,
        name: str,
        lease: float = 0,
        renewal_interval: Optional[float] = None,
        on_renewal_error: Optional[Callable[[Exception], None]] = None,
    ):
        """Create a lock handle.

        Args:
            store: A Store, or a redis client to wrap in a RedisStore
            name: Key of the lock record, unique per protected resource
            lease: Lease duration in seconds; 0 selects DEFAULT_LEASE
            renewal_interval: Seconds between renewals, half the lease by default
            on_renewal_error: Called with the exception when a renewal fails
        """
        self._validate_name(name)
        lease = self._validate_lease(lease)
        if renewal_interval is None:
            renewal_interval = lease / 2
        self._validate_renewal_interval(renewal_interval, lease)

        self._store: Store = as_store(store)
        self.name = name
        self.holder = str(uuid.uuid4())
        self.lease = lease
        self.renewal_interval = renewal_interval
        self._on_renewal_error = on_renewal_error
        self._mutex = threading.Lock()
        self._held = False
        self._keepalive: Optional[KeepAlive] = None
        self._log = logger.bind(lock=name, holder=self.holder)

    def _validate_name(self, name: str) -> None:
        """Validate lock name."""
        if not isinstance(name, str) or not name:
            raise ConfigurationError("Lock name must be a non-empty string")

    def _validate_lease(self, lease: Optional[float]) -> float:
        """Validate the lease and apply the default."""
        if lease is None:
            return DEFAULT_LEASE
        if isinstance(lease, bool) or not isinstance(lease, (int, float)):
            raise ConfigurationError("Lease must be a number of seconds")
        if lease == 0:
            return DEFAULT_LEASE
        if lease < 0.001:
            raise ConfigurationError("Lease must be at least one millisecond")
        return float(lease)

    def _validate_renewal_interval(self, interval: float, lease: float) -> None:
        if not 0 < interval < lease:
            raise ConfigurationError("Renewal interval must be positive and shorter than the lease")

    @property
    def lease_ms(self) -> int:
        return round(self.lease * 1000)

    @property
    def held(self) -> bool:
        """Whether this handle believes it owns the lock."""
        with self._mutex:
            return self._held

    @property
    def keepalive(self) -> Optional[KeepAlive]:
        return self._keepalive

    def acquire(self) -> bool:
        """Try once to take the lock.

        Returns:
            True if this handle now holds the lock, False if another
            holder owns it
        """
        with self._mutex:
            acquired = self._try_acquire()
            if acquired:
                self._held = True
                # a keepalive that just saw the old lease lost is on its way out
                if self._keepalive is None or not self._keepalive.running:
                    self._keepalive = KeepAlive(
                        self.name,
                        self._renew,
                        self.renewal_interval,
                        on_lost=self._lease_lost,
                        on_error=self._on_renewal_error,
                    )
                    self._keepalive.start()

        if acquired:
            self._log.debug("lock_acquired", lease=self.lease)
        else:
            self._log.debug("lock_contended")
        return acquired

    def release(self) -> ReleaseResult:
        """Give the lock back.

        Raises:
            NotHeldError: the lock record does not exist
            WrongHolderError: the record belongs to another holder
        """
        keepalive = None
        try:
            with self._mutex:
                try:
                    result = self._try_release()
                except LockError as e:
                    # whatever we believed, the store says we own nothing
                    keepalive = self._disown()
                    self._log.warning("release_rejected", reason=type(e).__name__)
                    raise
                if result.released:
                    keepalive = self._disown()
        finally:
            if keepalive is not None:
                keepalive.stop()

        if result.released:
            self._log.debug("lock_released")
        else:
            self._log.debug("lock_still_held", remaining=result.remaining)
        return result

    def info(self) -> LockInfo:
        """Read the lock record from the store."""
        holder, count, ttl = self._store.execute(self._inspect_script, [self.name], [self.holder])
        if isinstance(holder, bytes):
            holder = holder.decode()
        if not holder:
            return LockInfo(self.name, LockStatus.FREE, None, 0, None)
        ttl = int(ttl)
        return LockInfo(
            name=self.name,
            status=LockStatus.HELD,
            holder_id=holder,
            count=int(count),
            ttl_ms=ttl if ttl >= 0 else None,
        )

    @abstractmethod
    def _try_acquire(self) -> bool:
        """Run the store operation that takes the lock."""

    @abstractmethod
    def _try_release(self) -> ReleaseResult:
        """Run the store operation that gives the lock back."""

    def _renew(self) -> bool:
        return bool(self._store.execute(self._renew_script, [self.name], [self.holder, self.lease_ms]))

    def _disown(self) -> Optional[KeepAlive]:
        """Clear local ownership; caller holds the mutex and stops the result."""
        self._held = False
        keepalive, self._keepalive = self._keepalive, None
        return keepalive

    def _lease_lost(self, keepalive: KeepAlive) -> None:
        with self._mutex:
            if self._keepalive is keepalive:
                self._held = False
                self._keepalive = None

    def __enter__(self):
        if not self.acquire():
            raise LockHeldError(f"Lock '{self.name}' is already held", name=self.name)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def __repr__(self) -> str:
        state = "held" if self._held else "free"
        return f"{type(self).__name__}(name={self.name!r}, holder={self.holder!r}, {state})"


class Lock(BaseLock):
    """Non-reentrant distributed lock.

    The record is a plain key holding the holder token. A second
    ``acquire()`` through the same handle returns False like any other
    contender.
    """

    _renew_script = scripts.RENEW
    _inspect_script = scripts.INSPECT

    def _try_acquire(self) -> bool:
        return self._store.set_if_absent(self.name, self.holder, self.lease_ms)

    def _try_release(self) -> ReleaseResult:
        status = int(self._store.execute(scripts.RELEASE, [self.name], [self.holder]))
        if status == 0:
            raise NotHeldError(f"Lock '{self.name}' does not exist", name=self.name)
        if status < 0:
            raise WrongHolderError(f"Lock '{self.name}' is held by a different holder", name=self.name)
        return ReleaseResult(ReleaseStatus.RELEASED)
