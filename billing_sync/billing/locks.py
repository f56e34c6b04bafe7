import logging
from contextlib import contextmanager

from redis.exceptions import LockError, RedisError

from billing_sync.errors import TransientStoreError

logger = logging.getLogger(__name__)


class UserLocks:
    """
    Per-user mutual exclusion around admit + reconcile.

    Backed by a Redis lock when a client is configured. Without Redis this is
    a no-op and the version columns plus unique constraints carry correctness.
    """

    def __init__(self, client=None, ttl_seconds=30, prefix="billing:lock"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @property
    def enabled(self):
        return self.client is not None

    @contextmanager
    def hold(self, key, deadline=None):
        if self.client is None:
            yield
            return

        wait = deadline.remaining() if deadline is not None else self.ttl_seconds
        lock = self.client.lock(f"{self.prefix}:{key}", timeout=self.ttl_seconds)
        try:
            acquired = lock.acquire(blocking=True, blocking_timeout=wait)
        except RedisError as e:
            logger.error("Lock backend unavailable", extra={"lock_key": key, "error": str(e)})
            raise TransientStoreError("Lock backend unavailable")

        if not acquired:
            logger.warning("Timed out waiting for user lock", extra={"lock_key": key})
            raise TransientStoreError(f"Could not acquire lock for {key}")

        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # expired while we held it; the version checks still guard the write
                logger.warning("User lock expired before release", extra={"lock_key": key})
