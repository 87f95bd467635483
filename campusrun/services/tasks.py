"""Task row access shared by dispatch, reassignment and offer handling.

Every state transition on a task row goes through ``conditional_update``:
one ``UPDATE ... WHERE id = :id AND <preconditions>`` statement whose
``rowcount`` tells the caller whether it won. A zero rowcount means another
actor changed the row first.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from campusrun.db_models import TaskBase, TaskKind, User
from campusrun.events import event_bus
from campusrun.ids import commission_id, errand_id
from campusrun.kinds import KindProfile, caller_channel
from campusrun.utils import isoformat, load_id_list, parse_categories, status_str

logger = logging.getLogger("campusrun.tasks")


async def fetch_task(session: AsyncSession, profile: KindProfile, task_id: str) -> TaskBase | None:
    """Read the row straight from the store, refreshing any cached copy."""
    model = profile.model
    result = await session.execute(
        select(model).where(model.id == task_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def conditional_update(
    session: AsyncSession,
    profile: KindProfile,
    task_id: str,
    conditions: list,
    values: dict,
) -> int:
    """Apply ``values`` only if every condition still holds. Returns rows affected."""
    model = profile.model
    stmt = (
        update(model)
        .where(model.id == task_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount


# ---------------------------------------------------------------------------
# Broadcasts
# ---------------------------------------------------------------------------


def offer_payload(
    profile: KindProfile, task: TaskBase, assigned_at: datetime, expires_at: datetime
) -> dict:
    kind = profile.kind.value
    return {
        f"{kind}_id": task.id,
        f"{kind}_title": task.title,
        f"{kind}_category": task.categories,
        "caller_id": task.requester_id,
        "assigned_at": isoformat(assigned_at),
        "expires_at": isoformat(expires_at),
    }


def notify_offer(
    profile: KindProfile,
    task: TaskBase,
    runner_id: str,
    assigned_at: datetime,
    expires_at: datetime,
) -> None:
    """Tell a runner they hold the offer. Delivery failure never undoes the assignment."""
    channel = profile.offer_channel(runner_id)
    try:
        event_bus.send(channel, profile.offer_event, offer_payload(profile, task, assigned_at, expires_at))
    except Exception:
        logger.warning("Offer broadcast to %s failed for %s", channel, task.id, exc_info=True)


def notify_requester(profile: KindProfile, task: TaskBase, event: str, **extra) -> None:
    channel = caller_channel(task.requester_id)
    payload = {
        "task_id": task.id,
        "task_type": profile.kind.value,
        "task_title": task.title,
        **extra,
    }
    try:
        event_bus.send(channel, event, payload)
    except Exception:
        logger.warning("Broadcast %s to %s failed for %s", event, channel, task.id, exc_info=True)


def notify_cancelled(profile: KindProfile, task: TaskBase, reason: str) -> None:
    notify_requester(profile, task, "task_cancelled", reason=reason)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def queue_view(profile: KindProfile, task: TaskBase) -> dict:
    queue = load_id_list(task.ranked_runner_ids) if task.ranked_runner_ids is not None else None
    return {
        "task_id": task.id,
        "task_type": profile.kind.value,
        "status": status_str(task.status),
        "runner_id": task.runner_id,
        "notified_runner_id": task.notified_runner_id,
        "notified_at": isoformat(task.notified_at),
        "notified_expires_at": isoformat(task.notified_expires_at),
        "ranked_runner_ids": queue,
        "current_queue_index": task.current_queue_index,
        "timeout_runner_ids": load_id_list(task.timeout_runner_ids),
        "declined_runner_id": getattr(task, "declined_runner_id", None),
    }


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def create_task(
    session: AsyncSession,
    profile: KindProfile,
    requester_id: str,
    title: str = "",
    categories: list[str] | None = None,
) -> TaskBase:
    """Insert a pending task with no queue. Dispatch is triggered separately."""
    requester = await session.get(User, requester_id)
    if not requester:
        raise HTTPException(status_code=404, detail="Requester not found")

    new_id = errand_id() if profile.kind == TaskKind.errand else commission_id()
    labels = parse_categories(",".join(categories or []))
    task = profile.model(
        id=new_id,
        requester_id=requester_id,
        title=title,
        categories=",".join(labels) or None,
    )
    session.add(task)
    await session.commit()
    logger.info("Created %s %s for %s", profile.kind.value, task.id, requester_id)
    return task
