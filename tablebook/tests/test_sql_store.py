from datetime import datetime

import pytest
from asyncpg import exceptions as asyncpg_exc
from sqlalchemy.exc import IntegrityError

from tablebook.app.core.errors import NoCapacity
from tablebook.app.db.sql import SqlReservationStore
from tablebook.app.db.store import DuplicateIdempotencyKey
from tablebook.app.models import Customer

pytestmark = pytest.mark.asyncio


class ScriptedSession:
    """Stands in for an AsyncSession; every execute raises ``error`` when set."""

    def __init__(self, error=None) -> None:
        self.error = error
        self.statements: list[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def begin(self):
        return self

    async def execute(self, statement, params=None):
        self.statements.append(str(statement))
        if self.error is not None:
            raise self.error


def integrity_error(cause: Exception) -> IntegrityError:
    # The asyncpg dialect wraps the driver error; the driver error is the cause.
    orig = Exception(str(cause))
    orig.__cause__ = cause
    return IntegrityError("INSERT INTO reservation ...", {}, orig)


async def insert(store: SqlReservationStore, key: str = "key-1"):
    return await store.create_reservation(
        restaurant_id="R1",
        sector_id="S1",
        table_ids=["T4"],
        party_size=6,
        start=datetime.fromisoformat("2025-09-08T20:00:00-03:00"),
        end=datetime.fromisoformat("2025-09-08T21:30:00-03:00"),
        customer=Customer(name="A", phone="1", email="a@example.com"),
        notes=None,
        idempotency_key=key,
    )


async def test_overlap_constraint_violation_is_no_capacity():
    cause = asyncpg_exc.ExclusionViolationError(
        'conflicting key value violates exclusion constraint "reservation_table_no_overlap"'
    )
    session = ScriptedSession(integrity_error(cause))
    store = SqlReservationStore(lambda: session)

    with pytest.raises(NoCapacity):
        await insert(store)
    assert "INSERT INTO reservation" in session.statements[0]


async def test_idempotency_key_unique_violation_is_duplicate_key():
    cause = asyncpg_exc.UniqueViolationError(
        'duplicate key value violates unique constraint "reservation_idempotency_key_uq"'
    )
    store = SqlReservationStore(lambda: ScriptedSession(integrity_error(cause)))

    with pytest.raises(DuplicateIdempotencyKey) as excinfo:
        await insert(store, key="taken")
    assert excinfo.value.key == "taken"


async def test_other_integrity_errors_propagate():
    cause = asyncpg_exc.ForeignKeyViolationError('insert violates foreign key constraint "reservation_sector_fk"')
    store = SqlReservationStore(lambda: ScriptedSession(integrity_error(cause)))

    with pytest.raises(IntegrityError):
        await insert(store)


async def test_insert_that_cannot_be_read_back_raises(monkeypatch):
    store = SqlReservationStore(lambda: ScriptedSession())

    async def nothing(reservation_id):
        return None

    monkeypatch.setattr(store, "get_reservation", nothing)
    with pytest.raises(RuntimeError, match="not readable after insert"):
        await insert(store)
