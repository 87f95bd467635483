from datetime import UTC, datetime, timedelta

import pytest

from campusrun.db_models import Commission, Errand, TaskStatus
from campusrun.kinds import ERRAND
from campusrun.services import dispatch as dispatch_module
from campusrun.services.dispatch import DispatchAnomaly, dispatch_task
from campusrun.services.tasks import fetch_task
from campusrun.utils import as_utc, load_id_list
from tests.conftest import (
    complete_task_for,
    create_caller,
    create_runner,
    create_task,
    drain,
)


@pytest.mark.asyncio
async def test_assigns_best_runner_and_stores_queue(session):
    near = await create_runner(session, meters=100, rating=3.0)
    specialist = await create_runner(session, meters=300, rating=4.5)
    await complete_task_for(session, specialist.id, "printing")
    task = await create_task(session, Errand, categories="printing")
    now = datetime.now(UTC)

    result = await dispatch_task(session, "errand", task.id, now)

    assert result["status"] == "assigned"
    assert result["assigned_runner_id"] == specialist.id
    assert result["queue_length"] == 2

    row = await fetch_task(session, ERRAND, task.id)
    assert load_id_list(row.ranked_runner_ids) == [specialist.id, near.id]
    assert row.current_queue_index == 0
    assert row.notified_runner_id == specialist.id
    assert row.is_notified is True
    assert as_utc(row.notified_expires_at) == now + timedelta(seconds=60)
    assert row.status == TaskStatus.pending


@pytest.mark.asyncio
async def test_history_only_counts_same_kind(session):
    near = await create_runner(session, meters=100, rating=3.0)
    far = await create_runner(session, meters=300, rating=4.5)
    # Completed commission work does not feed errand affinity
    await complete_task_for(session, far.id, "printing", model=Commission)
    task = await create_task(session, Errand, categories="printing")

    result = await dispatch_task(session, "errand", task.id)
    # near: 0.4*0.8 + 0.35*0.6 = 0.53; far: 0.4*0.4 + 0.35*0.9 = 0.475
    assert result["assigned_runner_id"] == near.id


@pytest.mark.asyncio
async def test_second_dispatch_is_already_assigned(session):
    await create_runner(session)
    task = await create_task(session, Errand)

    first = await dispatch_task(session, "errand", task.id)
    second = await dispatch_task(session, "errand", task.id)

    assert first["status"] == "assigned"
    assert second["status"] == "already_assigned"
    row = await fetch_task(session, ERRAND, task.id)
    assert row.notified_runner_id == first["assigned_runner_id"]


@pytest.mark.asyncio
async def test_unknown_task_is_404(session):
    from fastapi import HTTPException

    with pytest.raises(HTTPException) as exc:
        await dispatch_task(session, "errand", "er_missing")
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_no_eligible_runners_cancels(session, subscribe):
    task = await create_task(session, Errand)
    inbox = subscribe(f"caller_notify_{task.requester_id}")

    result = await dispatch_task(session, "errand", task.id)

    assert result["status"] == "no_eligible_runners"
    assert result["task_status"] == "cancelled"
    row = await fetch_task(session, ERRAND, task.id)
    assert row.status == TaskStatus.cancelled
    assert row.notified_runner_id is None

    events = drain(inbox)
    assert [e.type for e in events] == ["task_cancelled"]
    assert events[0].payload["reason"] == "no_eligible_runners"


@pytest.mark.asyncio
async def test_no_runners_within_distance_reports_debug(session):
    await create_runner(session, meters=2000)
    task = await create_task(session, Errand)

    result = await dispatch_task(session, "errand", task.id)

    assert result["status"] == "no_runners_within_distance"
    assert result["debug"] == {
        "eligible_runners_count": 1,
        "distance_threshold_m": 500.0,
        "requester_has_location": True,
    }
    row = await fetch_task(session, ERRAND, task.id)
    assert row.status == TaskStatus.cancelled


@pytest.mark.asyncio
async def test_requester_without_location_cancels(session):
    await create_runner(session)
    caller = await create_caller(session, location=None)
    task = await create_task(session, Errand, requester_id=caller.id)

    result = await dispatch_task(session, "errand", task.id)
    assert result["status"] == "no_runners_within_distance"
    assert result["debug"]["requester_has_location"] is False


@pytest.mark.asyncio
async def test_commission_skips_absent_runners(session):
    now = datetime.now(UTC)
    await create_runner(session, meters=50, last_seen_at=now - timedelta(minutes=5))
    present = await create_runner(session, meters=400, last_seen_at=now)
    task = await create_task(session, Commission)

    result = await dispatch_task(session, "commission", task.id, now)
    assert result["assigned_runner_id"] == present.id
    assert result["queue_length"] == 1


@pytest.mark.asyncio
async def test_offer_broadcast_to_runner(session, subscribe):
    runner = await create_runner(session)
    task = await create_task(session, Commission, categories="Printing, food", title="Poster")
    inbox = subscribe(f"commission_notify_{runner.id}")

    result = await dispatch_task(session, "commission", task.id)

    events = drain(inbox)
    assert len(events) == 1
    assert events[0].type == "commission_notification"
    payload = events[0].payload
    assert payload["commission_id"] == task.id
    assert payload["commission_title"] == "Poster"
    assert payload["commission_category"] == "Printing, food"
    assert payload["caller_id"] == task.requester_id
    assert payload["expires_at"] == result["expires_at"]


@pytest.mark.asyncio
async def test_broadcast_failure_keeps_assignment(session, monkeypatch):
    await create_runner(session)
    task = await create_task(session, Errand)

    def boom(*args, **kwargs):
        raise RuntimeError("sink down")

    monkeypatch.setattr("campusrun.services.tasks.event_bus.send", boom)
    result = await dispatch_task(session, "errand", task.id)

    assert result["status"] == "assigned"
    row = await fetch_task(session, ERRAND, task.id)
    assert row.notified_runner_id == result["assigned_runner_id"]


@pytest.mark.asyncio
async def test_claim_miss_without_winner_is_anomaly(session, monkeypatch):
    await create_runner(session)
    task = await create_task(session, Errand)

    async def no_rows(*args, **kwargs):
        return 0

    monkeypatch.setattr(dispatch_module, "conditional_update", no_rows)
    with pytest.raises(DispatchAnomaly) as exc:
        await dispatch_task(session, "errand", task.id)
    assert exc.value.status_code == 500
    assert exc.value.detail == "assignment_failed"


@pytest.mark.asyncio
async def test_cancelled_task_is_not_reassigned(session):
    await create_runner(session)
    task_id = (await create_task(session, Errand, status=TaskStatus.cancelled)).id

    with pytest.raises(DispatchAnomaly):
        await dispatch_task(session, "errand", task_id)
    row = await fetch_task(session, ERRAND, task_id)
    assert row.notified_runner_id is None
