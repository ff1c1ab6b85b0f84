"""Shared fixtures: an in-process Redis with Lua support."""

import time

import fakeredis
import pytest

from leaselock import RedisStore


@pytest.fixture
def server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(server):
    client = fakeredis.FakeRedis(server=server)
    yield client
    client.close()


@pytest.fixture
def store(redis_client):
    return RedisStore(redis_client)


@pytest.fixture
def make_lock(store):
    """Build locks on the shared store and stop their renewal threads afterwards."""
    created = []

    def factory(cls, name, **kwargs):
        lock = cls(kwargs.pop("store", store), name, **kwargs)
        created.append(lock)
        return lock

    yield factory

    for lock in created:
        if lock.keepalive is not None:
            lock.keepalive.stop()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout passes."""

    def poll(predicate, timeout=2.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return poll
