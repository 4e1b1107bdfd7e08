"""
Per-event selection guard.

A single row per event whose `version` is bumped, compare-and-swap
style, in the same transaction that commits a table selection. Two
selections for one event can therefore never both commit against the
same view of availability, whichever process they run in.
"""

from sqlalchemy import Column, Integer, String

from stallbook.db.base import Base, TimestampMixin


class SelectionGuard(Base, TimestampMixin):
    __tablename__ = "selection_guards"

    event_id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SelectionGuard(event={self.event_id}, version={self.version})>"
