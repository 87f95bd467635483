"""Completed-task history used for category affinity."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from campusrun.db_models import TaskStatus
from campusrun.kinds import KindProfile
from campusrun.ranking import HistoryFetcher
from campusrun.utils import parse_categories


async def completed_categories(
    session: AsyncSession, profile: KindProfile, runner_id: str
) -> list[list[str]]:
    """One category list per task of this kind the runner has completed."""
    model = profile.model
    result = await session.execute(
        select(model.categories).where(
            model.runner_id == runner_id,
            model.status == TaskStatus.completed,
        )
    )
    return [parse_categories(row[0]) for row in result.fetchall()]


def history_fetcher(session: AsyncSession, profile: KindProfile) -> HistoryFetcher:
    async def fetch(runner_id: str) -> list[list[str]]:
        return await completed_categories(session, profile, runner_id)

    return fetch
