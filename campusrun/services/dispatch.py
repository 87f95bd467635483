"""Initial assignment: rank runners once, store the queue, offer to the head."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from campusrun.config import settings
from campusrun.db_models import TaskBase, TaskKind, TaskStatus
from campusrun.kinds import KindProfile, profile_for
from campusrun.outcomes import DispatchStatus
from campusrun.ranking import rank_runners
from campusrun.services.eligibility import Eligibility, find_eligible_runners
from campusrun.services.history import history_fetcher
from campusrun.services.tasks import (
    conditional_update,
    fetch_task,
    notify_cancelled,
    notify_offer,
)
from campusrun.utils import dump_id_list, isoformat, parse_categories

logger = logging.getLogger("campusrun.dispatch")


class DispatchAnomaly(HTTPException):
    """The claim lost without a visible winner; the row is in a state we can't explain."""

    def __init__(self, detail: str = DispatchStatus.assignment_failed.value) -> None:
        super().__init__(status_code=500, detail=detail)


def _outcome(profile: KindProfile, task_id: str, status: DispatchStatus, **extra) -> dict:
    return {"status": status.value, "task_id": task_id, "task_type": profile.kind.value, **extra}


async def _cancel_unassignable(
    session: AsyncSession,
    profile: KindProfile,
    task: TaskBase,
    reason: DispatchStatus,
    now: datetime,
    eligibility: Eligibility | None = None,
) -> dict:
    """Fail fast: a task nobody can take is cancelled rather than left pending."""
    model = profile.model
    task_id = task.id
    rows = await conditional_update(
        session,
        profile,
        task_id,
        [model.status == TaskStatus.pending, model.notified_runner_id.is_(None)],
        {
            "status": TaskStatus.cancelled,
            "notified_runner_id": None,
            "notified_at": None,
            "notified_expires_at": None,
            "is_notified": False,
            "ranked_runner_ids": None,
            "current_queue_index": 0,
            "updated_at": now,
        },
    )
    if rows == 0:
        await session.rollback()
        current = await fetch_task(session, profile, task_id)
        if current and current.notified_runner_id is not None:
            return _outcome(profile, task_id, DispatchStatus.already_assigned)
        return _outcome(profile, task_id, reason, task_status=None)

    await session.commit()
    logger.info("Cancelled %s %s: %s", profile.kind.value, task.id, reason.value)
    notify_cancelled(profile, task, reason.value)

    extra: dict = {"task_status": TaskStatus.cancelled.value}
    if eligibility is not None and reason == DispatchStatus.no_runners_within_distance:
        extra["debug"] = {
            "eligible_runners_count": eligibility.pool_size,
            "distance_threshold_m": settings.max_distance_meters,
            "requester_has_location": eligibility.origin is not None,
        }
    return _outcome(profile, task_id, reason, **extra)


async def dispatch_task(
    session: AsyncSession,
    kind: TaskKind | str,
    task_id: str,
    now: datetime | None = None,
) -> dict:
    """Run eligibility and ranking for a fresh task and claim its first offer.

    Safe to call more than once for the same task: the claim is a single
    conditional update on ``notified_runner_id IS NULL AND status = pending``,
    so duplicate triggers report ``already_assigned``.
    """
    profile = profile_for(kind)
    model = profile.model
    now = now or datetime.now(UTC)

    task = await fetch_task(session, profile, task_id)
    if not task:
        raise HTTPException(status_code=404, detail=f"{profile.kind.value.capitalize()} not found")
    if task.notified_runner_id is not None:
        return _outcome(profile, task_id, DispatchStatus.already_assigned)

    eligibility = await find_eligible_runners(session, profile, task, now)
    if not eligibility.ok:
        return await _cancel_unassignable(session, profile, task, eligibility.reason, now, eligibility)

    ranked = await rank_runners(
        eligibility.runners,
        parse_categories(task.categories),
        eligibility.origin,
        history_fetcher(session, profile),
    )
    if not ranked:
        return await _cancel_unassignable(session, profile, task, DispatchStatus.no_runner_to_assign, now)

    top = ranked[0]
    queue = [r.id for r in ranked]
    expires_at = now + timedelta(seconds=settings.offer_timeout_seconds)

    # Atomic claim: only the first dispatcher to see an empty slot wins
    rows = await conditional_update(
        session,
        profile,
        task.id,
        [model.notified_runner_id.is_(None), model.status == TaskStatus.pending],
        {
            "notified_runner_id": top.id,
            "notified_at": now,
            "notified_expires_at": expires_at,
            "is_notified": True,
            "ranked_runner_ids": dump_id_list(queue),
            "current_queue_index": 0,
            "updated_at": now,
        },
    )
    if rows == 0:
        await session.rollback()
        current = await fetch_task(session, profile, task_id)
        if current and current.notified_runner_id is not None:
            logger.debug("Lost claim race on %s %s", profile.kind.value, task_id)
            return _outcome(profile, task_id, DispatchStatus.already_assigned)
        logger.error(
            "Claim on %s %s matched no row (status=%s, notified_runner_id=%s)",
            profile.kind.value,
            task_id,
            current.status if current else "missing",
            current.notified_runner_id if current else None,
        )
        raise DispatchAnomaly()

    await session.commit()
    logger.info(
        "Assigned %s %s to %s (score %.4f, queue of %d)",
        profile.kind.value,
        task.id,
        top.id,
        top.final_score,
        len(queue),
    )
    notify_offer(profile, task, top.id, now, expires_at)

    return _outcome(
        profile,
        task_id,
        DispatchStatus.assigned,
        assigned_runner_id=top.id,
        final_score=top.final_score,
        assigned_at=isoformat(now),
        expires_at=isoformat(expires_at),
        queue_length=len(queue),
    )
