"""Registering users and runners going on or off duty."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from campusrun.db_models import User, UserRole
from campusrun.geofence import check_location
from campusrun.ids import user_id
from campusrun.utils import parse_coordinate

logger = logging.getLogger("campusrun.users")


async def register_user(
    session: AsyncSession,
    name: str,
    role: UserRole = UserRole.caller,
    latitude: float | None = None,
    longitude: float | None = None,
    average_rating: float | None = None,
) -> User:
    now = datetime.now(UTC)
    has_location = latitude is not None and longitude is not None
    user = User(
        id=user_id(),
        name=name,
        role=role,
        latitude=latitude,
        longitude=longitude,
        location_updated_at=now if has_location else None,
        average_rating=average_rating,
    )
    session.add(user)
    await session.commit()
    logger.info("Registered %s %s", role.value, user.id)
    return user


async def get_runner(session: AsyncSession, runner_id: str) -> User:
    runner = await session.get(User, runner_id)
    if not runner or runner.role != UserRole.runner:
        raise HTTPException(status_code=404, detail="Runner not found")
    return runner


async def set_availability(
    session: AsyncSession,
    runner_id: str,
    is_available: bool,
    latitude=None,
    longitude=None,
    now: datetime | None = None,
) -> dict:
    """Record a runner heartbeat and flip their availability.

    Going online is refused outside the campus geofence; the refusal is a
    normal answer (``allowed: false``), not an error. Going offline always
    succeeds.
    """
    now = now or datetime.now(UTC)
    runner = await get_runner(session, runner_id)

    lat = parse_coordinate(latitude)
    lon = parse_coordinate(longitude)
    if (latitude is not None or longitude is not None) and (lat is None or lon is None):
        raise HTTPException(status_code=400, detail="Invalid GPS coordinates")

    if lat is not None:
        runner.latitude = lat
        runner.longitude = lon
        runner.location_updated_at = now
    runner.last_seen_at = now

    check = None
    if is_available:
        check = check_location(runner.latitude, runner.longitude)
        if not check.allowed:
            logger.info("Runner %s refused online: %s", runner_id, check.reason)
    runner.is_available = is_available and (check is None or check.allowed)

    session.add(runner)
    await session.commit()

    result = {"runner_id": runner.id, "is_available": runner.is_available}
    if check is not None:
        result.update(check.as_response())
    return result
