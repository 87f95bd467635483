"""Test fixtures with in-memory SQLite via SQLModel."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from campusrun.database import get_db_session
from campusrun.db_models import (  # noqa: F401
    Commission,
    Errand,
    TaskStatus,
    User,
    UserRole,
)
from campusrun.events import event_bus
from campusrun.ids import commission_id, errand_id, user_id
from campusrun.main import app

# Metres per degree of latitude on the haversine sphere (R = 6371 km)
METERS_PER_DEGREE = 111194.93

ORIGIN = (52.0, 4.9)


def offset_north(meters: float, origin: tuple[float, float] = ORIGIN) -> tuple[float, float]:
    return origin[0] + meters / METERS_PER_DEGREE, origin[1]


@pytest.fixture
async def db():
    engine = create_async_engine(
        "sqlite+aiosqlite://", echo=False, connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)  # type: ignore[call-overload]

    async def override_get_db_session():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session

    yield factory

    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture
async def session(db):
    async with db() as s:
        yield s


@pytest.fixture
async def client(db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def subscribe():
    """Subscribe to event bus channels for the duration of a test."""
    subscribed = []

    def _subscribe(channel: str):
        queue = event_bus.subscribe(channel)
        subscribed.append((channel, queue))
        return queue

    yield _subscribe

    for channel, queue in subscribed:
        event_bus.unsubscribe(channel, queue)


def drain(queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


async def create_caller(
    session: AsyncSession, location: tuple[float, float] | None = ORIGIN, name: str = "caller"
) -> User:
    user = User(
        id=user_id(),
        name=name,
        role=UserRole.caller,
        latitude=location[0] if location else None,
        longitude=location[1] if location else None,
    )
    session.add(user)
    await session.commit()
    return user


async def create_runner(
    session: AsyncSession,
    meters: float | None = 100.0,
    rating: float | None = 4.0,
    runner_id: str | None = None,
    available: bool = True,
    last_seen_at: datetime | None = None,
    location_updated_at: datetime | None = None,
    location: tuple[float, float] | None = None,
) -> User:
    """Create a runner ``meters`` north of the default origin, seen just now."""
    if location is None and meters is not None:
        location = offset_north(meters)
    user = User(
        id=runner_id or user_id(),
        name="runner",
        role=UserRole.runner,
        latitude=location[0] if location else None,
        longitude=location[1] if location else None,
        is_available=available,
        average_rating=rating,
        last_seen_at=last_seen_at or datetime.now(UTC),
        location_updated_at=location_updated_at,
    )
    session.add(user)
    await session.commit()
    return user


async def create_task(
    session: AsyncSession,
    model: type = Errand,
    requester_id: str | None = None,
    categories: str | None = None,
    title: str = "Pick up printouts",
    **fields,
):
    if requester_id is None:
        requester_id = (await create_caller(session)).id
    new_id = errand_id() if model is Errand else commission_id()
    task = model(
        id=fields.pop("id", new_id),
        requester_id=requester_id,
        title=title,
        categories=categories,
        **fields,
    )
    session.add(task)
    await session.commit()
    return task


async def complete_task_for(
    session: AsyncSession, runner_id: str, categories: str, model: type = Errand
):
    """History row: a task of ``model`` kind the runner has completed."""
    return await create_task(
        session, model, categories=categories, runner_id=runner_id, status=TaskStatus.completed
    )
