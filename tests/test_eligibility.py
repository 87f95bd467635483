from datetime import UTC, datetime, timedelta

import pytest

from campusrun.db_models import Commission, Errand
from campusrun.kinds import COMMISSION, ERRAND
from campusrun.outcomes import DispatchStatus
from campusrun.services.eligibility import find_eligible_runners
from tests.conftest import create_caller, create_runner, create_task


def ids(eligibility):
    return sorted(r.id for r in eligibility.runners)


@pytest.mark.asyncio
async def test_errand_ignores_presence(session):
    now = datetime.now(UTC)
    stale = await create_runner(session, last_seen_at=now - timedelta(hours=3))
    task = await create_task(session, Errand)

    result = await find_eligible_runners(session, ERRAND, task, now)
    assert result.ok
    assert ids(result) == [stale.id]


@pytest.mark.asyncio
async def test_commission_requires_recent_presence(session):
    now = datetime.now(UTC)
    fresh = await create_runner(session, last_seen_at=now - timedelta(seconds=30))
    await create_runner(session, last_seen_at=now - timedelta(seconds=120))
    task = await create_task(session, Commission)

    result = await find_eligible_runners(session, COMMISSION, task, now)
    assert ids(result) == [fresh.id]


@pytest.mark.asyncio
async def test_commission_stale_location_excluded(session):
    now = datetime.now(UTC)
    await create_runner(
        session,
        last_seen_at=now,
        location_updated_at=now - timedelta(minutes=10),
    )
    never_moved = await create_runner(session, last_seen_at=now, location_updated_at=None)
    task = await create_task(session, Commission)

    result = await find_eligible_runners(session, COMMISSION, task, now)
    assert ids(result) == [never_moved.id]


@pytest.mark.asyncio
async def test_unavailable_and_callers_excluded(session):
    await create_runner(session, available=False)
    await create_caller(session)
    task = await create_task(session, Errand)

    result = await find_eligible_runners(session, ERRAND, task)
    assert result.reason == DispatchStatus.no_eligible_runners


@pytest.mark.asyncio
async def test_timed_out_runners_excluded(session):
    a = await create_runner(session)
    b = await create_runner(session)
    task = await create_task(session, Errand, timeout_runner_ids=f'["{a.id}"]')

    result = await find_eligible_runners(session, ERRAND, task)
    assert ids(result) == [b.id]


@pytest.mark.asyncio
async def test_declined_runner_only_excluded_for_commissions(session):
    a = await create_runner(session)
    b = await create_runner(session)
    task = await create_task(session, Commission, declined_runner_id=a.id)

    result = await find_eligible_runners(session, COMMISSION, task)
    assert ids(result) == [b.id]


@pytest.mark.asyncio
async def test_distance_cutoff(session):
    near = await create_runner(session, meters=450)
    await create_runner(session, meters=650)
    task = await create_task(session, Errand)

    result = await find_eligible_runners(session, ERRAND, task)
    assert ids(result) == [near.id]
    assert result.pool_size == 2
    assert result.distances[near.id] == pytest.approx(450, abs=0.1)


@pytest.mark.asyncio
async def test_nobody_within_distance(session):
    await create_runner(session, meters=900)
    task = await create_task(session, Errand)

    result = await find_eligible_runners(session, ERRAND, task)
    assert result.reason == DispatchStatus.no_runners_within_distance
    assert result.origin is not None


@pytest.mark.asyncio
async def test_requester_without_location(session):
    await create_runner(session)
    caller = await create_caller(session, location=None)
    task = await create_task(session, Errand, requester_id=caller.id)

    result = await find_eligible_runners(session, ERRAND, task)
    assert result.reason == DispatchStatus.no_runners_within_distance
    assert result.origin is None
    assert result.pool_size == 1


@pytest.mark.asyncio
async def test_runner_without_coordinates_dropped(session):
    await create_runner(session, meters=None)
    ok = await create_runner(session)
    task = await create_task(session, Errand)

    result = await find_eligible_runners(session, ERRAND, task)
    assert ids(result) == [ok.id]


@pytest.mark.asyncio
async def test_zero_coordinates_are_usable(session):
    caller = await create_caller(session, location=(0.0, 0.0))
    runner = await create_runner(session, location=(0.0, 0.001))
    task = await create_task(session, Errand, requester_id=caller.id)

    result = await find_eligible_runners(session, ERRAND, task)
    assert ids(result) == [runner.id]
