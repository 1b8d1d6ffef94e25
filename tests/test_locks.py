# Lock layer: in-process property locks, Redis SET NX PX locking with token-checked release, and fail-open paths.
from __future__ import annotations

import threading
import time

import pytest
import redis

from booking_engine.errors import Timeout
from booking_engine.locks import Deadline, PropertyLocks, connect_lock_redis, redis_lock, redis_try_lock


class FakeRedis:
    """Just enough of redis.Redis for SET NX PX and the release script."""

    def __init__(self) -> None:
        self.store = {}
        self.evals = []
        self.ttls = {}

    def set(self, key, value, nx=False, px=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.ttls[key] = px
        return True

    def eval(self, script, numkeys, key, token):
        self.evals.append((key, token))
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


class BrokenRedis:
    def set(self, *args, **kwargs):
        raise redis.exceptions.ConnectionError("redis down")


@pytest.fixture()
def fake_redis():
    return FakeRedis()


def test_deadline_without_timeout_never_expires():
    deadline = Deadline(None)
    assert deadline.remaining() is None
    assert not deadline.expired()
    deadline.check("anything")


def test_deadline_check_raises_once_passed():
    deadline = Deadline(0.01)
    time.sleep(0.02)
    assert deadline.remaining() == 0.0
    with pytest.raises(Timeout):
        deadline.check("commit")


def test_try_lock_fails_open_without_redis():
    with redis_try_lock(None, "lock:test") as acquired:
        assert acquired is True


def test_try_lock_fails_open_on_redis_errors():
    with redis_try_lock(BrokenRedis(), "lock:test") as acquired:
        assert acquired is True


def test_try_lock_acquires_and_releases_with_token(fake_redis):
    with redis_try_lock(fake_redis, "lock:test", ttl_ms=1000) as acquired:
        assert acquired is True
        assert "lock:test" in fake_redis.store
        with redis_try_lock(fake_redis, "lock:test") as second:
            assert second is False
    assert fake_redis.store == {}
    # Only the owner ran the release script
    assert len(fake_redis.evals) == 1


def test_redis_lock_times_out_while_key_is_held(fake_redis):
    fake_redis.store["lock:busy"] = "someone-else"
    with pytest.raises(Timeout):
        with redis_lock(fake_redis, "lock:busy", Deadline(0.05), poll_seconds=0.01):
            pass
    assert fake_redis.store == {"lock:busy": "someone-else"}


def test_property_lock_uses_redis_key(fake_redis):
    with PropertyLocks(fake_redis).hold(7, Deadline(1)):
        assert "lock:booking:property:7" in fake_redis.store
    assert fake_redis.store == {}


def test_property_locks_are_independent_per_property():
    registry = PropertyLocks()
    with registry.hold(1, Deadline(None)):
        with registry.hold(2, Deadline(0.05)):
            pass
        with pytest.raises(Timeout):
            with registry.hold(1, Deadline(0.05)):
                pass


def test_property_lock_serializes_threads():
    registry = PropertyLocks()
    inside, peak = [0], [0]
    guard = threading.Lock()

    def worker() -> None:
        with registry.hold(3, Deadline(5)):
            with guard:
                inside[0] += 1
                peak[0] = max(peak[0], inside[0])
            time.sleep(0.01)
            with guard:
                inside[0] -= 1

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert peak[0] == 1


def test_redis_key_outlives_a_long_deadline(fake_redis):
    registry = PropertyLocks(fake_redis, ttl_ms=500)
    with registry.hold(8, Deadline(10)):
        assert fake_redis.ttls["lock:booking:property:8"] >= 9000
    with registry.hold(8, Deadline(None)):
        assert fake_redis.ttls["lock:booking:property:8"] == 500


def test_no_redis_connection_when_disabled(monkeypatch):
    monkeypatch.setenv("REDIS_ENABLED", "false")
    assert connect_lock_redis() is None


def test_unreachable_redis_falls_back_to_local_locks(monkeypatch):
    class Unreachable:
        def ping(self):
            raise redis.exceptions.ConnectionError("connection refused")

    monkeypatch.setenv("REDIS_ENABLED", "true")
    monkeypatch.setattr(redis.Redis, "from_url", classmethod(lambda cls, url, **kwargs: Unreachable()))
    assert connect_lock_redis("redis://nowhere:6379/0") is None
