"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .arbiter import SelectionArbiter
from .local_arbiter import LocalSelectionArbiter

__all__ = ['SelectionArbiter', 'LocalSelectionArbiter']
