"""Tests for lease renewal."""

import threading
import time

import pytest

from leaselock import KeepAlive, Lock, ReentrantLock, RedisStore, StoreUnavailableError
from leaselock import scripts


class FlakyStore(RedisStore):
    """RedisStore whose renewal script can be made to fail."""

    def __init__(self, client):
        super().__init__(client)
        self.failing = False

    def execute(self, script, keys, args):
        if self.failing and script in (scripts.RENEW, scripts.REENTRANT_RENEW):
            raise StoreUnavailableError("connection reset by peer")
        return super().execute(script, keys, args)


class LosingStore(RedisStore):
    """Reports the lease lost once and holds the next SET NX until it has."""

    def __init__(self, client):
        super().__init__(client)
        self.lose_next_renewal = False
        self.hold_acquire = False
        self.loss_reported = threading.Event()

    def execute(self, script, keys, args):
        if self.lose_next_renewal and script == scripts.RENEW:
            self.lose_next_renewal = False
            self.loss_reported.set()
            return 0
        return super().execute(script, keys, args)

    def set_if_absent(self, key, value, ttl_ms):
        if self.hold_acquire:
            self.hold_acquire = False
            self.loss_reported.wait(2)
            # give the lost-lease callback time to queue on the handle mutex
            time.sleep(0.05)
        return super().set_if_absent(key, value, ttl_ms)


class TestKeepAlive:
    """Tests for the renewal thread itself"""

    def test_ticks_until_stopped(self, wait_until):
        calls = []
        keepalive = KeepAlive("job:1", lambda: calls.append(1) or True, 0.01)
        keepalive.start()
        assert wait_until(lambda: keepalive.renewals >= 3)

        keepalive.stop()
        assert not keepalive.running
        count = len(calls)
        time.sleep(0.05)
        assert len(calls) == count

    def test_lost_lease_ends_loop(self, wait_until):
        lost = []
        keepalive = KeepAlive("job:1", lambda: False, 0.01, on_lost=lost.append)
        keepalive.start()

        assert wait_until(lambda: lost == [keepalive])
        assert wait_until(lambda: not keepalive.running)
        assert keepalive.renewals == 0

    def test_errors_reported_and_loop_continues(self, wait_until):
        outcomes = iter([StoreUnavailableError("down"), StoreUnavailableError("down")])
        errors = []

        def renew():
            outcome = next(outcomes, True)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        keepalive = KeepAlive("job:1", renew, 0.01, on_error=errors.append)
        keepalive.start()
        try:
            assert wait_until(lambda: keepalive.renewals >= 1)
            assert keepalive.renewal_failures == 2
            assert len(errors) == 2
            assert all(isinstance(e, StoreUnavailableError) for e in errors)
        finally:
            keepalive.stop()

    def test_raising_error_hook_does_not_end_loop(self, wait_until):
        outcomes = iter([StoreUnavailableError("down")])

        def renew():
            outcome = next(outcomes, True)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        def broken_hook(error):
            raise RuntimeError("hook bug")

        keepalive = KeepAlive("job:1", renew, 0.01, on_error=broken_hook)
        keepalive.start()
        try:
            assert wait_until(lambda: keepalive.renewals >= 1)
            assert keepalive.renewal_failures == 1
            assert keepalive.running
        finally:
            keepalive.stop()

    def test_raising_lost_hook_ends_loop_quietly(self, wait_until):
        def broken_hook(keepalive):
            raise RuntimeError("hook bug")

        keepalive = KeepAlive("job:1", lambda: False, 0.01, on_lost=broken_hook)
        keepalive.start()
        assert wait_until(lambda: not keepalive.running)
        keepalive.stop()

    def test_stop_before_start_is_harmless(self):
        keepalive = KeepAlive("job:1", lambda: True, 0.01)
        keepalive.stop()
        assert not keepalive.running


class TestLeaseRenewal:
    """Tests for renewal driven by held locks"""

    @pytest.mark.parametrize("cls", [Lock, ReentrantLock])
    def test_held_lock_outlives_lease(self, cls, redis_client, make_lock):
        lock = make_lock(cls, "job:live", lease=0.2)
        assert lock.renewal_interval == pytest.approx(0.1)
        assert lock.acquire() is True

        time.sleep(0.35)

        assert redis_client.pttl("job:live") > 0
        assert lock.keepalive.renewals >= 1
        assert lock.held

    def test_released_lock_is_not_renewed(self, redis_client, make_lock):
        lock = make_lock(Lock, "job:1", lease=0.2)
        lock.acquire()
        lock.release()

        redis_client.set("job:1", "next-holder", px=150)
        time.sleep(0.25)
        assert redis_client.exists("job:1") == 0

    def test_renewal_never_extends_another_holder(self, redis_client, make_lock, wait_until):
        lock = make_lock(Lock, "job:1", lease=0.2)
        lock.acquire()

        # expired and re-taken by someone whose record has no TTL
        redis_client.set("job:1", "other-holder")

        assert wait_until(lambda: not lock.held)
        assert lock.keepalive is None
        assert redis_client.pttl("job:1") == -1
        assert redis_client.get("job:1") == b"other-holder"

    def test_reentrant_renewal_never_extends_another_holder(self, redis_client, make_lock, wait_until):
        lock = make_lock(ReentrantLock, "res:1", lease=0.2)
        lock.acquire()

        redis_client.delete("res:1")
        redis_client.hset("res:1", mapping={"holder": "other-holder", "count": 1})

        assert wait_until(lambda: not lock.held)
        assert redis_client.pttl("res:1") == -1

    def test_renewal_failures_do_not_revoke(self, redis_client, make_lock, wait_until):
        store = FlakyStore(redis_client)
        errors = []
        lock = make_lock(
            Lock, "job:1", store=store, lease=2, renewal_interval=0.05, on_renewal_error=errors.append
        )
        store.failing = True
        lock.acquire()

        assert wait_until(lambda: len(errors) >= 1)
        assert lock.held
        assert lock.keepalive.renewal_failures >= 1

        store.failing = False
        assert wait_until(lambda: lock.keepalive.renewals >= 1)
        assert lock.held
        assert lock.release().released

    def test_raising_error_hook_does_not_revoke(self, redis_client, make_lock, wait_until):
        store = FlakyStore(redis_client)
        failures = []

        def broken_hook(error):
            failures.append(error)
            raise RuntimeError("hook bug")

        lock = make_lock(
            Lock, "job:1", store=store, lease=2, renewal_interval=0.05, on_renewal_error=broken_hook
        )
        store.failing = True
        lock.acquire()
        assert wait_until(lambda: len(failures) >= 1)

        store.failing = False
        assert wait_until(lambda: lock.keepalive.renewals >= 1)
        assert lock.held
        assert lock.keepalive.running
        assert redis_client.exists("job:1") == 1

    def test_reacquire_while_lease_loss_is_reported(self, redis_client, make_lock, wait_until):
        store = LosingStore(redis_client)
        lock = make_lock(Lock, "job:1", store=store, lease=2, renewal_interval=0.05)
        assert lock.acquire() is True
        stale = lock.keepalive

        store.hold_acquire = True
        store.lose_next_renewal = True
        redis_client.delete("job:1")

        assert lock.acquire() is True
        # joins the stale thread, so its lost-lease callback has finished
        stale.stop()

        assert lock.held
        assert lock.keepalive is not None
        assert lock.keepalive is not stale
        assert lock.keepalive.running
        assert wait_until(lambda: lock.keepalive.renewals >= 1)
        assert redis_client.get("job:1") == lock.holder.encode()
