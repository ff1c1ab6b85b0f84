"""Reentrant lease lock."""

from . import scripts
from .exceptions import NotHeldError, WrongHolderError
from .lock import BaseLock
from .models import ReleaseResult, ReleaseStatus


class ReentrantLock(BaseLock):
    """Distributed lock the owning handle may take several times.

    The record is a hash of ``holder`` and ``count``. Each acquire by the
    owner bumps the count and refreshes the lease; the record is deleted by
    the release that brings the count back to zero.

    Releasing when no record exists raises NotHeldError rather than
    WrongHolderError, matching the exclusive lock.
    """

    _renew_script = scripts.REENTRANT_RENEW
    _inspect_script = scripts.REENTRANT_INSPECT

    def _try_acquire(self) -> bool:
        count = int(self._store.execute(
            scripts.REENTRANT_ACQUIRE, [self.name], [self.holder, self.lease_ms]
        ))
        if count > 1:
            self._log.debug("lock_reentered", count=count)
        return count > 0

    def _try_release(self) -> ReleaseResult:
        remaining = int(self._store.execute(scripts.REENTRANT_RELEASE, [self.name], [self.holder]))
        if remaining == -1:
            raise NotHeldError(f"Lock '{self.name}' does not exist", name=self.name)
        if remaining < 0:
            raise WrongHolderError(f"Lock '{self.name}' is held by a different holder", name=self.name)
        if remaining == 0:
            return ReleaseResult(ReleaseStatus.RELEASED)
        return ReleaseResult(ReleaseStatus.STILL_HELD, remaining)
