from __future__ import annotations

import asyncio
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.domain.scheduling import states as st
from app.errors import NotFoundError, PersistenceError
from app.models import Application, Inspection, InspectorScheduleLock
from app.services.inspection_store import InspectionStore
from app.services.retry import WriteRace, backoff_seconds, is_transient, with_retry
from app.services.status_sync import synthesize


def _locked():
    return OperationalError("UPDATE inspector_schedule_locks", {}, Exception("database is locked"))


class _Flaky:
    def __init__(self, failures, exc_factory=_locked, result="ok"):
        self.failures = failures
        self.exc_factory = exc_factory
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_factory()
        return self.result


class _Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_transient_failures_are_retried_with_growing_backoff():
    op, sleep = _Flaky(2), _Sleeps()

    out = asyncio.run(with_retry(op, label="t", attempts=3, base_seconds=0.1, max_seconds=5, sleep=sleep))

    assert out == "ok"
    assert op.calls == 3
    assert len(sleep.delays) == 2
    assert 0.08 <= sleep.delays[0] <= 0.12
    assert 0.16 <= sleep.delays[1] <= 0.24


def test_exhausted_retries_surface_as_persistence_error():
    op, sleep = _Flaky(10), _Sleeps()

    with pytest.raises(PersistenceError) as e:
        asyncio.run(with_retry(op, label="inspection.schedule", attempts=3, sleep=sleep))

    assert op.calls == 3
    assert len(sleep.delays) == 2
    assert isinstance(e.value.__cause__, OperationalError)
    assert e.value.as_dict()["error"] == "persistence_error"


def test_domain_errors_are_never_retried():
    op, sleep = _Flaky(5, exc_factory=lambda: NotFoundError("inspection", "x")), _Sleeps()

    with pytest.raises(NotFoundError):
        asyncio.run(with_retry(op, label="t", attempts=3, sleep=sleep))

    assert op.calls == 1
    assert sleep.delays == []


def test_non_transient_store_failures_fail_fast():
    op = _Flaky(5, exc_factory=lambda: IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))

    with pytest.raises(PersistenceError):
        asyncio.run(with_retry(op, label="t", attempts=3, sleep=_Sleeps()))
    assert op.calls == 1

    # unless the caller opts in for that error type
    op = _Flaky(1, exc_factory=lambda: IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    assert asyncio.run(with_retry(op, label="t", attempts=3, retry_on=(IntegrityError,), sleep=_Sleeps())) == "ok"


def test_cancellation_is_not_retried():
    op = _Flaky(5, exc_factory=asyncio.CancelledError)

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(with_retry(op, label="t", attempts=3, sleep=_Sleeps()))
    assert op.calls == 1


def test_backoff_is_capped():
    for n in range(12):
        assert backoff_seconds(n, base=0.05, cap=1.0) <= 1.2
    assert is_transient(_locked())
    assert is_transient(ConnectionResetError())
    assert not is_transient(ValueError())


def test_cancelled_while_waiting_for_the_inspector_leaves_no_trace(svc, ids, sessions):
    async def go():
        lock = svc.locks.for_inspector(ids.i)
        await lock.acquire()
        task = asyncio.create_task(svc.schedule_and_assign(ids.x, date(2025, 1, 10), "09:00", "10:00", ids.i))
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        lock.release()

        async with sessions() as db:
            return await db.get(Inspection, ids.x), await svc.get_inspection(ids.x)

    stored, current = asyncio.run(go())

    assert stored is None
    assert current.status == st.PENDING


def test_cancelled_mid_transaction_rolls_back_the_reservation(svc, ids, sessions):
    gate = asyncio.Event()
    reached = asyncio.Event()
    real_materialize = svc.sync.materialize

    async def slow_materialize(db, inspection_id):
        reached.set()
        await gate.wait()
        return await real_materialize(db, inspection_id)

    svc.sync.materialize = slow_materialize

    async def go():
        task = asyncio.create_task(svc.schedule_and_assign(ids.x, date(2025, 1, 10), "09:00", "10:00", ids.i))
        await asyncio.wait_for(reached.wait(), timeout=5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        svc.sync.materialize = real_materialize
        async with sessions() as db:
            lock = await db.get(InspectorScheduleLock, ids.i)
            stored = await db.get(Inspection, ids.x)

        # the inspector's schedule is free again
        again = await svc.schedule_and_assign(ids.x, date(2025, 1, 10), "09:00", "10:00", ids.i)
        return lock, stored, again

    lock, stored, again = asyncio.run(go())

    # the lock row is created inside the reserving transaction
    assert lock is None
    assert stored is None
    assert again.status == st.SCHEDULED


def test_write_races_are_retried_without_opting_in():
    op = _Flaky(2, exc_factory=lambda: WriteRace("inspection", "x-1"))

    assert asyncio.run(with_retry(op, label="t", attempts=3, sleep=_Sleeps())) == "ok"
    assert op.calls == 3


def test_losing_an_insert_to_a_concurrent_creator_is_a_write_race(svc, world, sessions):
    app_id = world.app_ids[0]

    async def go():
        await svc.sync.get_or_create(app_id)
        async with sessions() as db:
            app = await db.get(Application, app_id)
            dup = synthesize(app, "Harbor Grill")
            db.add(dup)
            with pytest.raises(WriteRace) as e:
                await InspectionStore(db).upsert(dup)
            await db.rollback()
        return e.value

    race = asyncio.run(go())

    assert race.entity == "inspection"
    assert isinstance(race.__cause__, IntegrityError)
