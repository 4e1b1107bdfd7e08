"""
In-process selection arbiter - one asyncio lock per event.
"""

import asyncio
import time
from contextlib import asynccontextmanager

from stallbook.core.config import get_settings
from stallbook.core.exceptions import OperationTimeoutError
from stallbook.core.metrics import selection_lock_wait
from stallbook.services.interfaces.arbiter import SelectionArbiter


class LocalSelectionArbiter(SelectionArbiter):
    """
    Serialize selections per event inside one process.

    Use when:
    - a single API worker serves the event
    - tests and development
    Multiple workers stay correct through the selection guard CAS, they
    just retry more often.

    A lock lives only while someone holds or waits on it.
    """

    def __init__(self, timeout: float = None):
        self.timeout = timeout if timeout is not None else get_settings().SELECTION_LOCK_TIMEOUT
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def exclusive(self, event_id: str):
        lock = self._locks.setdefault(event_id, asyncio.Lock())
        self._holders[event_id] = self._holders.get(event_id, 0) + 1
        try:
            start = time.perf_counter()
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise OperationTimeoutError(
                    f"Timed out waiting to select tables for event {event_id}; re-query the booking before retrying"
                )
            selection_lock_wait.observe(time.perf_counter() - start)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._holders[event_id] -= 1
            if self._holders[event_id] == 0:
                del self._holders[event_id]
                del self._locks[event_id]
