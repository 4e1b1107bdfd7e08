"""
Selection arbiter factory.
Configures which arbitration strategy serializes table selections.
"""

from typing import Optional

from stallbook.core.config import get_settings
from stallbook.services.interfaces.arbiter import SelectionArbiter
from stallbook.services.interfaces.local_arbiter import LocalSelectionArbiter


def get_arbiter_strategy() -> SelectionArbiter:
    """
    Build the configured arbiter.

    - local: LocalSelectionArbiter (single worker, default)
    - redis: RedisSelectionArbiter (multiple workers)

    Selected via the SELECTION_ARBITER env var.
    """
    strategy = get_settings().SELECTION_ARBITER

    if strategy == "redis":
        from stallbook.services.arbiter_service import RedisSelectionArbiter

        return RedisSelectionArbiter()
    return LocalSelectionArbiter()


# Singleton instance
_arbiter: Optional[SelectionArbiter] = None


def get_arbiter() -> SelectionArbiter:
    """Get arbiter singleton."""
    global _arbiter
    if _arbiter is None:
        _arbiter = get_arbiter_strategy()
    return _arbiter


def set_arbiter(arbiter: Optional[SelectionArbiter]) -> None:
    global _arbiter
    _arbiter = arbiter
