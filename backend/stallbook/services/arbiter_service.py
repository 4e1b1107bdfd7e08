"""
Redis-backed selection arbiter for multi-worker deployments.
Implements SelectionArbiter using a redis lock per event.

This lock does not fail open: if redis cannot be reached the selection
is refused with OperationTimeoutError. The database guard remains the
source of truth either way.
"""

import time
from contextlib import asynccontextmanager

from redis.exceptions import LockError, RedisError

from stallbook.core.config import get_settings
from stallbook.core.exceptions import OperationTimeoutError
from stallbook.core.logging import get_logger
from stallbook.core.metrics import selection_lock_wait
from stallbook.infrastructure.redis_client import get_redis
from stallbook.services.interfaces.arbiter import SelectionArbiter

logger = get_logger(__name__)


class RedisSelectionArbiter(SelectionArbiter):
    """
    Distributed per-event lock.

    Use when:
    - several API workers accept selections for the same event
    - popular events where guard retries would pile up
    """

    def __init__(self, timeout: float = None, lease_seconds: float = 30.0, client=None):
        self.redis = client if client is not None else get_redis()
        self.timeout = timeout if timeout is not None else get_settings().SELECTION_LOCK_TIMEOUT
        self.lease_seconds = lease_seconds

    @asynccontextmanager
    async def exclusive(self, event_id: str):
        lock = self.redis.lock(
            f"selection-lock:{event_id}",
            timeout=self.lease_seconds,
            blocking_timeout=self.timeout,
        )
        start = time.perf_counter()
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error("selection_lock_unavailable", event_id=event_id, error=str(e))
            raise OperationTimeoutError(f"Selection lock for event {event_id} is unavailable")
        if not acquired:
            raise OperationTimeoutError(
                f"Timed out waiting to select tables for event {event_id}; re-query the booking before retrying"
            )
        selection_lock_wait.observe(time.perf_counter() - start)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease expired mid-selection; the guard CAS already protected the write
                logger.warning("selection_lock_lease_expired", event_id=event_id)
