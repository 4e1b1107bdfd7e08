"""
Selection arbiter interface.
Allows swapping how table selections for one event are serialized.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager


class SelectionArbiter(ABC):
    """
    Interface for per-event selection arbitration.

    Implementations:
    - LocalSelectionArbiter: asyncio lock per event, single process
    - RedisSelectionArbiter: redis lock per event, shared across workers

    The arbiter narrows the race window; the selection guard's version
    CAS inside the critical section stays the authority.
    """

    @abstractmethod
    def exclusive(self, event_id: str) -> AbstractAsyncContextManager:
        """
        Hold exclusive selection rights on an event for the duration of
        the `async with` block.

        Raises:
            OperationTimeoutError if the lock cannot be acquired in time
        """
        pass
