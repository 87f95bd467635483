"""Timeout advancement: move expired offers down each task's stored queue.

Runs from the background loop and from the cron trigger endpoint. Holds no
state between runs; the task row is the only source of truth. Every write is
a compare-and-swap on the ``notified_runner_id`` seen when the row was read,
so a concurrent accept, dispatch or second scheduler run simply makes this
one skip the task.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from campusrun.config import settings
from campusrun.db_models import TaskBase, TaskStatus
from campusrun.kinds import COMMISSION, ERRAND, KindProfile
from campusrun.outcomes import NO_RUNNERS_AVAILABLE, Advance
from campusrun.ranking import rank_runners
from campusrun.services.eligibility import find_eligible_runners
from campusrun.services.history import history_fetcher
from campusrun.services.tasks import (
    conditional_update,
    fetch_task,
    notify_cancelled,
    notify_offer,
)
from campusrun.utils import dump_id_list, load_id_list, parse_categories

logger = logging.getLogger("campusrun.reassign")


@dataclass
class KindTally:
    total: int = 0
    reassigned: int = 0
    cleared: int = 0
    skipped: int = 0
    errors: int = 0

    def record(self, outcome: Advance) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)


async def scan_timed_out(
    session: AsyncSession, profile: KindProfile, now: datetime
) -> list[tuple[str, str]]:
    """Oldest expired offers first, as ``(task_id, notified_runner_id)`` pairs."""
    model = profile.model
    threshold = now - timedelta(seconds=settings.offer_timeout_seconds)
    result = await session.execute(
        select(model.id, model.notified_runner_id)
        .where(
            model.status == TaskStatus.pending,
            model.runner_id == None,  # noqa: E711
            model.notified_runner_id != None,  # noqa: E711
            model.notified_at != None,  # noqa: E711
            model.notified_at < threshold,
        )
        .order_by(model.notified_at.asc())
        .limit(settings.reassign_batch_size)
    )
    return [(row[0], row[1]) for row in result.fetchall()]


def _still_timed_out(task: TaskBase | None, previous_runner_id: str) -> bool:
    return (
        task is not None
        and task.notified_runner_id == previous_runner_id
        and task.status == TaskStatus.pending
        and task.runner_id is None
    )


def _offer_guard(profile: KindProfile, previous_runner_id: str) -> list:
    model = profile.model
    return [
        model.status == TaskStatus.pending,
        model.runner_id == None,  # noqa: E711
        model.notified_runner_id == previous_runner_id,
    ]


async def _cancel_exhausted(
    session: AsyncSession,
    profile: KindProfile,
    task: TaskBase,
    previous_runner_id: str,
    values: dict,
    now: datetime,
) -> Advance:
    rows = await conditional_update(
        session,
        profile,
        task.id,
        _offer_guard(profile, previous_runner_id),
        {
            "status": TaskStatus.cancelled,
            "notified_runner_id": None,
            "notified_at": None,
            "notified_expires_at": None,
            "is_notified": False,
            "updated_at": now,
            **values,
        },
    )
    if rows == 0:
        await session.rollback()
        return Advance.skipped

    await session.commit()
    logger.info("Cancelled %s %s: no runners left to offer", profile.kind.value, task.id)
    notify_cancelled(profile, task, NO_RUNNERS_AVAILABLE)
    return Advance.cleared


async def _offer_next(
    session: AsyncSession,
    profile: KindProfile,
    task: TaskBase,
    previous_runner_id: str,
    next_runner_id: str,
    values: dict,
    now: datetime,
    extra_guard: list | None = None,
) -> Advance:
    task_id = task.id
    expires_at = now + timedelta(seconds=settings.offer_timeout_seconds)
    rows = await conditional_update(
        session,
        profile,
        task_id,
        _offer_guard(profile, previous_runner_id) + (extra_guard or []),
        {
            "notified_runner_id": next_runner_id,
            "notified_at": now,
            "notified_expires_at": expires_at,
            "is_notified": True,
            "updated_at": now,
            **values,
        },
    )
    if rows == 0:
        # Accepted or advanced between our read and this write
        await session.rollback()
        logger.debug("%s %s changed under us, skipping", profile.kind.value, task_id)
        return Advance.skipped

    await session.commit()
    logger.info(
        "Reassigned %s %s from %s to %s", profile.kind.value, task.id, previous_runner_id, next_runner_id
    )
    notify_offer(profile, task, next_runner_id, now, expires_at)
    return Advance.reassigned


async def _legacy_rerank(
    session: AsyncSession,
    profile: KindProfile,
    task: TaskBase,
    previous_runner_id: str,
    timeouts: list[str],
    now: datetime,
) -> Advance:
    """Rows dispatched before queues were stored: rank again, minus everyone who timed out.

    Never writes ``ranked_runner_ids`` or ``current_queue_index``.
    """
    eligibility = await find_eligible_runners(session, profile, task, now, extra_excluded=timeouts)
    ranked = []
    if eligibility.ok:
        ranked = await rank_runners(
            eligibility.runners,
            parse_categories(task.categories),
            eligibility.origin,
            history_fetcher(session, profile),
        )

    values = {"timeout_runner_ids": dump_id_list(timeouts)}
    if not ranked:
        return await _cancel_exhausted(session, profile, task, previous_runner_id, values, now)
    return await _offer_next(session, profile, task, previous_runner_id, ranked[0].id, values, now)


async def advance_task(
    session: AsyncSession,
    profile: KindProfile,
    task_id: str,
    previous_runner_id: str,
    now: datetime | None = None,
) -> Advance:
    """Move one timed-out offer to the next runner in the stored queue."""
    now = now or datetime.now(UTC)
    model = profile.model

    task = await fetch_task(session, profile, task_id)
    if not _still_timed_out(task, previous_runner_id):
        logger.debug("%s %s already resolved, skipping", profile.kind.value, task_id)
        return Advance.skipped

    timeouts = load_id_list(task.timeout_runner_ids)
    if previous_runner_id not in timeouts:
        timeouts.append(previous_runner_id)

    queue = load_id_list(task.ranked_runner_ids)
    if not queue:
        if not settings.legacy_rerank_enabled:
            return Advance.skipped
        return await _legacy_rerank(session, profile, task, previous_runner_id, timeouts, now)

    index = task.current_queue_index or 0
    next_index = index + 1
    values = {"current_queue_index": next_index, "timeout_runner_ids": dump_id_list(timeouts)}

    if next_index >= len(queue):
        return await _cancel_exhausted(session, profile, task, previous_runner_id, values, now)

    return await _offer_next(
        session,
        profile,
        task,
        previous_runner_id,
        queue[next_index],
        values,
        now,
        extra_guard=[model.current_queue_index == index],
    )


async def reassign_timed_out_tasks(session: AsyncSession, now: datetime | None = None) -> dict:
    """One scheduler pass over errands then commissions.

    A failure on one task is recorded and the batch carries on.
    """
    now = now or datetime.now(UTC)
    errors: list[dict] = []
    tallies: dict[str, KindTally] = {}

    for profile in (ERRAND, COMMISSION):
        tally = tallies[profile.plural] = KindTally()
        try:
            candidates = await scan_timed_out(session, profile, now)
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error("Scan of %s failed: %s", profile.plural, exc)
            errors.append(
                {"task_id": None, "task_type": profile.kind.value, "error": f"Query error: {exc}"}
            )
            continue

        tally.total = len(candidates)
        for task_id, previous_runner_id in candidates:
            try:
                outcome = await advance_task(session, profile, task_id, previous_runner_id, now)
            except Exception as exc:
                await session.rollback()
                tally.errors += 1
                errors.append({"task_id": task_id, "task_type": profile.kind.value, "error": str(exc)})
                logger.exception("Error advancing %s %s", profile.kind.value, task_id)
                continue
            tally.record(outcome)

    return {
        "success": True,
        "processed": {plural: asdict(t) for plural, t in tallies.items()},
        "errors": errors,
    }
