"""Runner accepts an offer; requester releases an accepted runner."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from campusrun.db_models import TaskKind, TaskStatus
from campusrun.kinds import COMMISSION, profile_for
from campusrun.services.dispatch import dispatch_task
from campusrun.services.tasks import conditional_update, fetch_task, notify_requester
from campusrun.utils import isoformat, status_str

logger = logging.getLogger("campusrun.offers")


async def accept_offer(
    session: AsyncSession,
    kind: TaskKind | str,
    task_id: str,
    runner_id: str,
    now: datetime | None = None,
) -> dict:
    """Turn the runner's outstanding offer into an assignment.

    Only the runner currently holding the offer can win, and only while the
    task is still pending and unassigned. ``notified_runner_id`` is kept so a
    late duplicate dispatch still sees the slot as taken.
    """
    profile = profile_for(kind)
    model = profile.model
    now = now or datetime.now(UTC)

    task = await fetch_task(session, profile, task_id)
    if not task:
        raise HTTPException(status_code=404, detail=f"{profile.kind.value.capitalize()} not found")

    # Atomic status transition
    rows = await conditional_update(
        session,
        profile,
        task_id,
        [
            model.status == TaskStatus.pending,
            model.runner_id == None,  # noqa: E711
            model.notified_runner_id == runner_id,
        ],
        {
            "runner_id": runner_id,
            "status": TaskStatus.in_progress,
            "is_notified": False,
            "notified_expires_at": None,
            "updated_at": now,
        },
    )
    if rows == 0:
        await session.rollback()
        current = await fetch_task(session, profile, task_id)
        status = status_str(current.status) if current else "missing"
        raise HTTPException(
            status_code=409,
            detail=f"Offer is not held by this runner (task is {status})",
        )

    await session.commit()
    logger.info("Runner %s accepted %s %s", runner_id, profile.kind.value, task_id)
    notify_requester(profile, task, "task_accepted", runner_id=runner_id, accepted_at=isoformat(now))

    return {
        "task_id": task_id,
        "task_type": profile.kind.value,
        "status": TaskStatus.in_progress.value,
        "runner_id": runner_id,
        "accepted_at": isoformat(now),
    }


async def release_runner(
    session: AsyncSession,
    task_id: str,
    now: datetime | None = None,
) -> dict:
    """Requester turns down the runner on a commission and asks for someone else.

    The released runner is recorded as declined so the fresh dispatch that
    follows leaves them out; that dispatch ranks from scratch and stores a
    new queue.
    """
    profile = COMMISSION
    model = profile.model
    now = now or datetime.now(UTC)

    task = await fetch_task(session, profile, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Commission not found")
    released = task.runner_id
    if not released:
        raise HTTPException(status_code=409, detail="Commission has no runner to release")

    rows = await conditional_update(
        session,
        profile,
        task_id,
        [
            model.runner_id == released,
            model.status.in_([TaskStatus.pending, TaskStatus.in_progress]),
        ],
        {
            "status": TaskStatus.pending,
            "runner_id": None,
            "declined_runner_id": released,
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
        raise HTTPException(status_code=409, detail="Commission already changed status")

    await session.commit()
    logger.info("Released runner %s from commission %s", released, task_id)

    outcome = await dispatch_task(session, profile.kind, task_id, now)
    return {**outcome, "released_runner_id": released}
