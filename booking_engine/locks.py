# Per-property serialization for booking writes.
# An in-process lock registry guarantees mutual exclusion on one node; an optional Redis lock extends it across
# processes and fails open so the service stays available if Redis is down.
from __future__ import annotations

import logging
import math
import os
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from uuid import uuid4

import redis

from .config import truthy
from .errors import Timeout

# Namespaced logger for lock acquisition/release diagnostics
logger = logging.getLogger("booking_engine.locks")

# Token-checked delete so we never release a lock someone else now owns
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def connect_lock_redis(url: Optional[str] = None) -> Optional[redis.Redis]:
    """
    Connect to the Redis instance that backs cross-process property locks.

    Returns None when REDIS_ENABLED is off or the server does not answer a ping;
    PropertyLocks then serializes with its in-process registry alone.
    """
    if not truthy(os.getenv("REDIS_ENABLED"), default=False):
        return None
    url = url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
    # Short socket timeouts: a slow lock server must not eat the booking deadline
    client = redis.Redis.from_url(url, socket_timeout=0.25, socket_connect_timeout=0.25, retry_on_timeout=False)
    try:
        client.ping()
    except redis.RedisError as exc:
        logger.warning("lock redis unavailable, using in-process locks only", extra={"url": url, "error": str(exc)})
        return None
    logger.info("lock redis connected", extra={"url": url})
    return client


class Deadline:
    """Absolute point in time after which an operation must give up."""

    def __init__(self, timeout: Optional[float]) -> None:
        self.timeout = timeout
        self._expires = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        if self._expires is None:
            return None
        return max(0.0, self._expires - time.monotonic())

    def expired(self) -> bool:
        return self._expires is not None and time.monotonic() >= self._expires

    def check(self, what: str) -> None:
        if self.expired():
            raise Timeout(f"Timed out during {what}", details={"timeout_seconds": self.timeout})


@contextmanager
def redis_try_lock(client: Optional[redis.Redis], key: str, ttl_ms: int = 5000) -> Iterator[bool]:
    """
    Best-effort distributed lock implemented with Redis SET NX PX.

    Behavior:
    - True when the lock is acquired, or when there is no client or Redis errors (fail-open).
    - False when another process holds the lock.
    - Unlock uses a token-checked Lua script to avoid releasing a lock we don't own.
    """
    if client is None:
        yield True
        return

    token = uuid4().hex
    try:
        acquired = bool(client.set(key, token, nx=True, px=ttl_ms))
    except redis.RedisError as exc:
        logger.warning("redis_try_lock error (key=%s): %s", key, exc)
        yield True
        return
    try:
        yield acquired
    finally:
        if acquired:
            try:
                client.eval(_RELEASE_SCRIPT, 1, key, token)
            except redis.RedisError as exc:
                # Do not raise; the lock will expire by TTL
                logger.debug("redis_try_lock release error (key=%s): %s", key, exc)


@contextmanager
def redis_lock(
    client: Optional[redis.Redis],
    key: str,
    deadline: Deadline,
    ttl_ms: int = 5000,
    poll_seconds: float = 0.02,
) -> Iterator[None]:
    """Blocking variant of redis_try_lock: polls until acquired or raises Timeout at the deadline."""
    while True:
        with redis_try_lock(client, key, ttl_ms=ttl_ms) as locked:
            if locked:
                yield
                return
        remaining = deadline.remaining()
        if remaining is not None and remaining <= 0:
            raise Timeout(f"Timed out waiting for {key}", details={"timeout_seconds": deadline.timeout})
        time.sleep(poll_seconds if remaining is None else min(poll_seconds, remaining))


class PropertyLocks:
    """
    Registry of one lock per property id, optionally mirrored in Redis.

    Usage:

        with locks.hold(property_id, deadline):
            # check availability + insert, serialized per property
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, ttl_ms: int = 5000) -> None:
        self.redis_client = redis_client
        self.ttl_ms = ttl_ms
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def _lock_for(self, property_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(property_id)
            if lock is None:
                lock = self._locks[property_id] = threading.Lock()
            return lock

    def ttl_for(self, deadline: Deadline) -> int:
        # The Redis key must outlive the work it guards, which may run until the deadline
        remaining = deadline.remaining()
        if remaining is None:
            return self.ttl_ms
        return max(self.ttl_ms, math.ceil(remaining * 1000))

    @contextmanager
    def hold(self, property_id: int, deadline: Deadline) -> Iterator[None]:
        lock = self._lock_for(property_id)
        remaining = deadline.remaining()
        acquired = lock.acquire(timeout=-1 if remaining is None else remaining)
        if not acquired:
            logger.info("property lock timeout", extra={"property_id": property_id, "timeout": deadline.timeout})
            raise Timeout(
                f"Timed out waiting for property {property_id}",
                details={"property_id": property_id, "timeout_seconds": deadline.timeout},
            )
        try:
            key = f"lock:booking:property:{property_id}"
            with redis_lock(self.redis_client, key, deadline, ttl_ms=self.ttl_for(deadline)):
                yield
        finally:
            lock.release()
