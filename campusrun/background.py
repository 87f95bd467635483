"""Background task: advance timed-out offers down their runner queues."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.orm import sessionmaker

from campusrun.config import settings
from campusrun.services.reassign import reassign_timed_out_tasks

logger = logging.getLogger("campusrun.background")


def _summarize(result: dict) -> str | None:
    parts = []
    for plural, tally in result["processed"].items():
        if tally["total"] or tally["errors"]:
            parts.append(
                f"{plural}: {tally['reassigned']} reassigned, {tally['cleared']} cleared, "
                f"{tally['skipped']} skipped, {tally['errors']} failed"
            )
    if not parts and not result["errors"]:
        return None
    return "; ".join(parts) or f"{len(result['errors'])} error(s)"


async def run_once(session_factory: sessionmaker) -> dict:
    async with session_factory() as session:
        result = await reassign_timed_out_tasks(session)
    summary = _summarize(result)
    if summary:
        logger.info("Reassignment pass: %s", summary)
    return result


async def background_loop(session_factory: sessionmaker) -> None:
    while True:
        try:
            await run_once(session_factory)
        except Exception:
            logger.exception("Background task error")

        await asyncio.sleep(settings.reassign_interval_seconds)
