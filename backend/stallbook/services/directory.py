"""
Read-only lookups for entities this engine does not own: events (with
their venue layout and add-on catalogue) and vendors.

The engine only ever stores the immutable IDs it gets from here and
never writes back.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from stallbook.core.logging import get_logger
from stallbook.domain import AddOnItem, EventProjection, VendorProjection, VenuePosition, to_decimal

logger = get_logger(__name__)


class Directory(ABC):
    """
    Interface for identity and venue lookups.

    Implementations:
    - InMemoryDirectory: process-local registry, optionally seeded from JSON
    """

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[EventProjection]:
        pass

    @abstractmethod
    async def get_vendor(self, vendor_id: str) -> Optional[VendorProjection]:
        pass


class InMemoryDirectory(Directory):
    def __init__(self):
        self._events: dict[str, EventProjection] = {}
        self._vendors: dict[str, VendorProjection] = {}

    def register_event(self, event: EventProjection) -> None:
        self._events[event.event_id] = event

    def register_vendor(self, vendor: VendorProjection) -> None:
        self._vendors[vendor.vendor_id] = vendor

    async def get_event(self, event_id: str) -> Optional[EventProjection]:
        return self._events.get(event_id)

    async def get_vendor(self, vendor_id: str) -> Optional[VendorProjection]:
        return self._vendors.get(vendor_id)

    @classmethod
    def from_file(cls, path: str) -> "InMemoryDirectory":
        """
        Load a seed file shaped like:

            {"events": [{"eventId", "title", "organizerId", "venueTables": [...],
                         "addOnItems": [...]}],
             "vendors": [{"vendorId", "name", ...}]}
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        directory = cls()
        for raw in data.get("events", []):
            directory.register_event(
                EventProjection(
                    event_id=raw["eventId"],
                    title=raw.get("title", ""),
                    organizer_id=raw.get("organizerId"),
                    location=raw.get("location"),
                    venue_tables=tuple(
                        VenuePosition(
                            position_id=t["positionId"],
                            table_id=t["tableId"],
                            name=t.get("name", t["tableId"]),
                            table_type=t.get("type", "standard"),
                            price=to_decimal(t.get("price", 0)),
                            deposit_amount=to_decimal(t.get("depositAmount", 0)),
                            layout_name=t.get("layoutName"),
                        )
                        for t in raw.get("venueTables", [])
                    ),
                    add_on_items=tuple(
                        AddOnItem(add_on_id=a["addOnId"], name=a["name"], price=to_decimal(a["price"]))
                        for a in raw.get("addOnItems", [])
                    ),
                )
            )
        for raw in data.get("vendors", []):
            directory.register_vendor(
                VendorProjection(
                    vendor_id=raw["vendorId"],
                    name=raw.get("name", ""),
                    email=raw.get("email"),
                    whatsapp_number=raw.get("whatsappNumber"),
                    business_name=raw.get("businessName"),
                )
            )

        logger.info("directory_loaded", path=path, events=len(directory._events), vendors=len(directory._vendors))
        return directory


_directory: Optional[Directory] = None


def get_directory() -> Directory:
    """Get directory singleton."""
    global _directory
    if _directory is None:
        from stallbook.core.config import get_settings

        seed = get_settings().DIRECTORY_SEED_FILE
        _directory = InMemoryDirectory.from_file(seed) if seed else InMemoryDirectory()
    return _directory


def set_directory(directory: Optional[Directory]) -> None:
    global _directory
    _directory = directory
