import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tablebook.app.db.memory import InMemoryReservationStore
from tablebook.app.main import app
from tablebook.app.models import Customer, Restaurant, Sector, Shift, Table
from tablebook.app.routers.deps import get_engine
from tablebook.app.services.reservations import ReservationEngine

TZ = "America/Argentina/Buenos_Aires"


@pytest.fixture
def store() -> InMemoryReservationStore:
    """Bistro with a four-table main hall (S1) and a one-table terrace (S2)."""
    store = InMemoryReservationStore()
    store.add_restaurant(
        Restaurant(
            id="R1",
            name="Bistro Central",
            timezone=TZ,
            shifts=[Shift(start="12:00", end="16:00"), Shift(start="20:00", end="23:45")],
        )
    )
    store.add_sector(Sector(id="S1", restaurant_id="R1", name="Main Hall"))
    store.add_sector(Sector(id="S2", restaurant_id="R1", name="Terrace"))
    store.add_table(Table(id="T1", sector_id="S1", name="Table 1", min_size=2, max_size=2))
    store.add_table(Table(id="T2", sector_id="S1", name="Table 2", min_size=2, max_size=4))
    store.add_table(Table(id="T3", sector_id="S1", name="Table 3", min_size=2, max_size=4))
    store.add_table(Table(id="T4", sector_id="S1", name="Table 4", min_size=4, max_size=6))
    store.add_table(Table(id="T5", sector_id="S2", name="Table 5", min_size=2, max_size=2))
    return store


@pytest.fixture
def engine(store) -> ReservationEngine:
    return ReservationEngine(store)


@pytest.fixture
def customer() -> Customer:
    return Customer(name="Test Guest", phone="+5491100000000", email="guest@example.com")


@pytest_asyncio.fixture
async def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
