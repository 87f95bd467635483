"""CampusRun: dispatch service for campus errands and commissions."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from campusrun.api.router import api_router
from campusrun.background import background_loop
from campusrun.config import settings
from campusrun.database import close_db, get_session_factory, init_db
from campusrun.events import event_bus

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("campusrun")


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_url = settings.database_url
    if not db_url.startswith("sqlite"):
        db_url = f"sqlite+aiosqlite:///{db_url}"
    await init_db(db_url)
    safe_url = re.sub(r"://[^:]+:[^@]+@", "://***:***@", db_url)
    logger.info("Database connected: %s", safe_url)

    bg_task = None
    if settings.scheduler_enabled:
        bg_task = asyncio.create_task(background_loop(get_session_factory()))
        logger.info("Reassignment loop every %ds", settings.reassign_interval_seconds)

    yield

    if bg_task:
        bg_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await bg_task
    closed = event_bus.close_all()
    if closed:
        logger.info("Closed %d event channel(s)", closed)
    await close_db()
    logger.info("Database closed")


app = FastAPI(
    title="CampusRun",
    description="Ranked runner dispatch for campus errands and commissions",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": "store_error"}, status_code=500)


@app.get("/health")
async def health():
    return {"status": "ok", "scheduler": settings.scheduler_enabled}


def main():
    import uvicorn

    uvicorn.run(
        "campusrun.main:app",
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
