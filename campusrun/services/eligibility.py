"""Narrow the runner pool before ranking."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from campusrun.config import settings
from campusrun.db_models import TaskBase, User, UserRole
from campusrun.geo import distance_meters
from campusrun.kinds import KindProfile
from campusrun.outcomes import DispatchStatus
from campusrun.utils import load_id_list, parse_coordinate

logger = logging.getLogger("campusrun.eligibility")


@dataclass
class Eligibility:
    """Runners that survived every filter, or the reason none did."""

    reason: DispatchStatus | None = None
    runners: list[User] = field(default_factory=list)
    origin: tuple[float, float] | None = None
    pool_size: int = 0
    distances: dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.reason is None


def excluded_runner_ids(
    profile: KindProfile, task: TaskBase, extra: Iterable[str] = ()
) -> set[str]:
    excluded = set(load_id_list(task.timeout_runner_ids))
    excluded.update(extra)
    declined = getattr(task, "declined_runner_id", None)
    if profile.honours_declined_runner and declined:
        excluded.add(declined)
    return excluded


async def query_runner_pool(
    session: AsyncSession,
    profile: KindProfile,
    excluded: set[str],
    now: datetime | None = None,
) -> list[User]:
    """Available runners, with the presence window applied where the kind asks for it."""
    now = now or datetime.now(UTC)
    query = select(User).where(User.role == UserRole.runner, User.is_available.is_(True))
    if profile.presence_filter:
        fresh_after = now - timedelta(seconds=settings.presence_window_seconds)
        query = query.where(
            User.last_seen_at != None,  # noqa: E711
            User.last_seen_at >= fresh_after,
            (User.location_updated_at == None) | (User.location_updated_at >= fresh_after),  # noqa: E711
        )
    if excluded:
        query = query.where(User.id.not_in(excluded))
    result = await session.execute(query.order_by(User.id))
    return list(result.scalars().all())


async def requester_origin(session: AsyncSession, requester_id: str) -> tuple[float, float] | None:
    requester = await session.get(User, requester_id)
    if not requester:
        return None
    lat = parse_coordinate(requester.latitude)
    lon = parse_coordinate(requester.longitude)
    if lat is None or lon is None:
        return None
    return lat, lon


def within_distance(
    runners: list[User], origin: tuple[float, float], max_distance: float
) -> tuple[list[User], dict[str, float]]:
    """Keep runners with usable coordinates inside the hard cutoff."""
    kept: list[User] = []
    distances: dict[str, float] = {}
    for runner in runners:
        lat = parse_coordinate(runner.latitude)
        lon = parse_coordinate(runner.longitude)
        if lat is None or lon is None:
            continue
        meters = distance_meters(origin, (lat, lon))
        if math.isnan(meters) or meters > max_distance:
            continue
        kept.append(runner)
        distances[runner.id] = meters
    return kept, distances


async def find_eligible_runners(
    session: AsyncSession,
    profile: KindProfile,
    task: TaskBase,
    now: datetime | None = None,
    extra_excluded: Iterable[str] = (),
) -> Eligibility:
    excluded = excluded_runner_ids(profile, task, extra_excluded)
    pool = await query_runner_pool(session, profile, excluded, now)
    if not pool:
        return Eligibility(reason=DispatchStatus.no_eligible_runners)

    origin = await requester_origin(session, task.requester_id)
    if origin is None:
        logger.info("Requester %s of %s has no usable location", task.requester_id, task.id)
        return Eligibility(reason=DispatchStatus.no_runners_within_distance, pool_size=len(pool))

    runners, distances = within_distance(pool, origin, settings.max_distance_meters)
    if not runners:
        return Eligibility(
            reason=DispatchStatus.no_runners_within_distance, origin=origin, pool_size=len(pool)
        )
    return Eligibility(runners=runners, origin=origin, pool_size=len(pool), distances=distances)
