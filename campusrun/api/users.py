"""User registration and runner availability routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from campusrun.database import get_db_session
from campusrun.geofence import check_location
from campusrun.models import (
    AvailabilityRequest,
    AvailabilityResponse,
    ErrorResponse,
    GeofenceResponse,
    RegisterUserRequest,
    UserResponse,
)
from campusrun.services.users import get_runner, register_user, set_availability
from campusrun.utils import parse_coordinate

router = APIRouter()


@router.post("/v1/users", response_model=UserResponse, status_code=201)
async def register(body: RegisterUserRequest, session=Depends(get_db_session)):
    """Register a caller or a runner."""
    user = await register_user(
        session, body.name, body.role, body.latitude, body.longitude, body.average_rating
    )
    return {
        "id": user.id,
        "name": user.name,
        "role": user.role.value,
        "latitude": user.latitude,
        "longitude": user.longitude,
        "is_available": user.is_available,
    }


@router.post(
    "/v1/runners/{runner_id}/availability",
    response_model=AvailabilityResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_availability(
    runner_id: str, body: AvailabilityRequest, session=Depends(get_db_session)
):
    """Heartbeat with an optional position; going online is checked against the geofence."""
    return await set_availability(
        session, runner_id, body.is_available, body.latitude, body.longitude
    )


@router.post(
    "/v1/validate-availability",
    response_model=GeofenceResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def validate_availability(request: Request, session=Depends(get_db_session)):
    """Would this runner be allowed online here? A refusal is a 200, not an error."""
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid request body")
    if not body.get("runner_id"):
        raise HTTPException(status_code=400, detail="runner_id is required")

    lat = parse_coordinate(body.get("latitude"))
    lon = parse_coordinate(body.get("longitude"))
    if lat is None or lon is None:
        raise HTTPException(status_code=400, detail="Invalid GPS coordinates")

    await get_runner(session, body["runner_id"])
    return check_location(lat, lon).as_response()
