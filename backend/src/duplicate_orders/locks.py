"""Per-order evaluation locks.

Upstream platforms redeliver order webhooks, so two workers may evaluate the
same order at once. Evaluations are serialized per (shop_domain, order_id);
evaluations of different orders never wait on each other.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

from redis import Redis
from redis.exceptions import LockError

from domain.duplicate_detection.ports import LockUnavailableError

logger = logging.getLogger(__name__)

LOCK_PREFIX = "dupe-eval"


def lock_key(shop_domain: str, order_id: str) -> str:
    return f"{LOCK_PREFIX}:{shop_domain}:{order_id}"


class KeyedLock(ABC):
    """Mutual exclusion keyed by (shop_domain, order_id)."""

    @abstractmethod
    @contextmanager
    def hold(self, shop_domain: str, order_id: str) -> Iterator[None]:
        """Hold the lock for one order.

        Raises:
            LockUnavailableError: If the lock cannot be acquired in time
        """
        pass


class InProcessKeyedLock(KeyedLock):
    """Thread lock per key, for single-process deployments and tests.

    Entries are reference counted and dropped once no thread holds or waits
    for them, so the table does not grow with the number of orders seen.
    """

    def __init__(self, blocking_timeout: Optional[float] = None):
        self.blocking_timeout = blocking_timeout
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [lock, refcount]

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @property
    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, shop_domain: str, order_id: str) -> Iterator[None]:
        key = lock_key(shop_domain, order_id)
        lock = self._checkout(key)
        timeout = -1 if self.blocking_timeout is None else self.blocking_timeout
        try:
            if not lock.acquire(timeout=timeout):
                raise LockUnavailableError(f"Evaluation of {key} already in progress")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._release(key)


class RedisKeyedLock(KeyedLock):
    """Distributed per-order lock on Redis, shared by all workers.

    The lock expires after ``timeout`` seconds so a crashed worker cannot
    block an order forever.
    """

    def __init__(self, redis: Redis, timeout: int = 30, blocking_timeout: float = 5.0):
        self.redis = redis
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @classmethod
    def from_url(cls, url: str, timeout: int = 30, blocking_timeout: float = 5.0) -> "RedisKeyedLock":
        return cls(Redis.from_url(url), timeout=timeout, blocking_timeout=blocking_timeout)

    @contextmanager
    def hold(self, shop_domain: str, order_id: str) -> Iterator[None]:
        key = lock_key(shop_domain, order_id)
        lock = self.redis.lock(key, timeout=self.timeout, blocking_timeout=self.blocking_timeout)

        if not lock.acquire():
            raise LockUnavailableError(f"Evaluation of {key} already in progress")

        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # Expired while held; another worker may own it now.
                logger.warning(f"Lock {key} expired before release")
