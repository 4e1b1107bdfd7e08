"""
Pytest fixtures for test database, directory, notifier and client.

Each test gets its own SQLite database file so concurrent sessions see
real commits and real locking, and nothing leaks between tests.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./stallbook_import_only.db")

from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from stallbook.main import app
from stallbook.db.base import Base
from stallbook.db.session import get_db
from stallbook.domain import (
    AddOnItem,
    AddOnSelection,
    EventProjection,
    PaymentStatus,
    TableSelection,
    VendorProjection,
    VenuePosition,
)
from stallbook.services import booking_service
from stallbook.services.directory import InMemoryDirectory, get_directory
from stallbook.services.interfaces.local_arbiter import LocalSelectionArbiter
from stallbook.services.notifier import RecordingNotifier, set_notifier
from stallbook.services.strategy_factory import get_arbiter

EVENT_ID = "evt-summer-fair"
EMPTY_EVENT_ID = "evt-no-layout"
ORGANIZER_ID = "org-1"
VENDOR_IDS = ["vendor-a", "vendor-b", "vendor-c", "vendor-d"]


def _layout() -> tuple:
    return tuple(
        VenuePosition(
            position_id=f"P-{n}",
            table_id=f"T-{n}",
            name=f"Table {n}",
            table_type="premium" if n <= 2 else "standard",
            price=Decimal("100"),
            deposit_amount=Decimal("50"),
            layout_name="Main Hall",
        )
        for n in range(1, 13)
    )


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh database per test; yields a factory so tests can open parallel sessions."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'stallbook_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def directory() -> InMemoryDirectory:
    directory = InMemoryDirectory()
    directory.register_event(
        EventProjection(
            event_id=EVENT_ID,
            title="Summer Fair",
            organizer_id=ORGANIZER_ID,
            location="Town Square",
            venue_tables=_layout(),
            add_on_items=(
                AddOnItem(add_on_id="chair", name="Extra chair", price=Decimal("10")),
                AddOnItem(add_on_id="power", name="Power outlet", price=Decimal("25")),
            ),
        )
    )
    directory.register_event(EventProjection(event_id=EMPTY_EVENT_ID, title="Unplanned", organizer_id=ORGANIZER_ID))
    for vendor_id in VENDOR_IDS:
        directory.register_vendor(VendorProjection(vendor_id=vendor_id, name=vendor_id.title()))
    return directory


@pytest.fixture
def arbiter() -> LocalSelectionArbiter:
    return LocalSelectionArbiter(timeout=5)


@pytest.fixture(autouse=True)
def notifier():
    recorder = RecordingNotifier()
    set_notifier(recorder)
    yield recorder
    set_notifier(None)


@pytest.fixture
def tables():
    """Build table selections from the seeded layout: tables("P-1", "P-2")."""
    layout = {p.position_id: p for p in _layout()}

    def build(*position_ids: str) -> list[TableSelection]:
        selections = []
        for position_id in position_ids:
            p = layout[position_id]
            selections.append(
                TableSelection(
                    table_id=p.table_id,
                    position_id=p.position_id,
                    table_name=p.name,
                    table_type=p.table_type,
                    layout_name=p.layout_name,
                    price=p.price,
                    deposit_amount=p.deposit_amount,
                )
            )
        return selections

    return build


@pytest.fixture
def chairs():
    return [AddOnSelection(add_on_id="chair", name="Extra chair", price=Decimal("10"), quantity=2)]


@pytest.fixture
def lifecycle(db_session, directory, arbiter, tables, chairs):
    """Shortcuts that walk a booking through the state machine."""

    class Lifecycle:
        async def pending(self, vendor_id: str = VENDOR_IDS[0]):
            return await booking_service.create_booking(db_session, directory, vendor_id, EVENT_ID, ORGANIZER_ID)

        async def confirmed(self, vendor_id: str = VENDOR_IDS[0]):
            booking = await self.pending(vendor_id)
            return await booking_service.confirm(db_session, booking.id)

        async def processing(self, vendor_id: str = VENDOR_IDS[0], positions=("P-1",)):
            booking = await self.confirmed(vendor_id)
            return await booking_service.select_tables_and_add_ons(
                db_session, directory, arbiter, booking.id, tables(*positions), chairs
            )

        async def completed(self, vendor_id: str = VENDOR_IDS[0], positions=("P-1",)):
            booking = await self.processing(vendor_id, positions)
            return await booking_service.set_payment_status(db_session, booking.id, PaymentStatus.PAID)

    return Lifecycle()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, directory, arbiter) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with DB, directory and arbiter dependencies overridden."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_directory] = lambda: directory
    app.dependency_overrides[get_arbiter] = lambda: arbiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
