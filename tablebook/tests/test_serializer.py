import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from tablebook.app.core.errors import BookingTimeout, NoCapacity
from tablebook.app.db.memory import InMemoryReservationStore
from tablebook.app.services.serializer import BookingSerializer, lock_key

ART = timezone(timedelta(hours=-3))
SLOT = datetime(2025, 9, 8, 20, 0, tzinfo=ART)


def test_lock_key_is_instant_based_and_truncated_to_minute():
    assert lock_key("S1", SLOT.replace(second=30)) == lock_key("S1", datetime(2025, 9, 8, 23, 0, tzinfo=timezone.utc))
    assert lock_key("S1", SLOT) != lock_key("S2", SLOT)
    assert lock_key("S1", SLOT) != lock_key("S1", SLOT + timedelta(minutes=15))


@pytest.mark.asyncio
async def test_same_key_runs_one_at_a_time_in_arrival_order():
    serializer = BookingSerializer(InMemoryReservationStore())
    key = lock_key("S1", SLOT)
    order: list[int] = []
    active = 0
    max_active = 0

    def body(n: int):
        async def run():
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            order.append(n)
            active -= 1
            return n

        return run

    results = await asyncio.gather(*(serializer.run(key, body(n)) for n in range(5)))

    assert results == [0, 1, 2, 3, 4]
    assert order == [0, 1, 2, 3, 4]
    assert max_active == 1
    assert serializer.pending(key) == 0


@pytest.mark.asyncio
async def test_distinct_keys_proceed_in_parallel():
    serializer = BookingSerializer(InMemoryReservationStore())
    first_entered = asyncio.Event()
    second_entered = asyncio.Event()

    async def first():
        first_entered.set()
        await asyncio.wait_for(second_entered.wait(), timeout=1)
        return "first"

    async def second():
        second_entered.set()
        await asyncio.wait_for(first_entered.wait(), timeout=1)
        return "second"

    results = await asyncio.gather(
        serializer.run(lock_key("S1", SLOT), first),
        serializer.run(lock_key("S1", SLOT + timedelta(minutes=15)), second),
    )
    assert results == ["first", "second"]


@pytest.mark.asyncio
async def test_failed_attempt_does_not_block_the_queue():
    serializer = BookingSerializer(InMemoryReservationStore())
    key = lock_key("S1", SLOT)

    async def failing():
        await asyncio.sleep(0.01)
        raise NoCapacity()

    async def succeeding():
        return "ok"

    results = await asyncio.gather(
        serializer.run(key, failing),
        serializer.run(key, succeeding),
        return_exceptions=True,
    )
    assert isinstance(results[0], NoCapacity)
    assert results[1] == "ok"
    assert serializer.pending(key) == 0


@pytest.mark.asyncio
async def test_stalled_attempt_times_out_without_blocking_later_ones():
    serializer = BookingSerializer(InMemoryReservationStore(), timeout=0.2)
    key = lock_key("S1", SLOT)
    never = asyncio.Event()

    async def stalled():
        await never.wait()

    async def quick():
        return "done"

    stalled_task = asyncio.create_task(serializer.run(key, stalled))
    await asyncio.sleep(0.1)
    quick_task = asyncio.create_task(serializer.run(key, quick))

    with pytest.raises(BookingTimeout):
        await stalled_task
    assert await quick_task == "done"
    assert serializer.pending(key) == 0


@pytest.mark.asyncio
async def test_timeout_raised_by_the_body_is_not_reported_as_queue_timeout():
    serializer = BookingSerializer(InMemoryReservationStore(), timeout=5)
    key = lock_key("S1", SLOT)

    async def connect_times_out():
        raise asyncio.TimeoutError("connect timed out")

    with pytest.raises(asyncio.TimeoutError, match="connect timed out") as excinfo:
        await serializer.run(key, connect_times_out)
    assert not isinstance(excinfo.value, BookingTimeout)
    assert serializer.pending(key) == 0
