"""Mount all API routes."""

from fastapi import APIRouter

from campusrun.api.events import router as events_router
from campusrun.api.tasks import router as tasks_router
from campusrun.api.users import router as users_router

api_router = APIRouter()
api_router.include_router(users_router, tags=["users"])
api_router.include_router(tasks_router, tags=["dispatch"])
api_router.include_router(events_router, tags=["events"])
