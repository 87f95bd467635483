"""Pydantic models for request/response schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from campusrun.db_models import UserRole


class DispatchRequest(BaseModel):
    # Optional so a missing id is reported as 400 by the route, not 422
    task_id: str | None = Field(default=None, max_length=100)


class AcceptRequest(BaseModel):
    runner_id: str = Field(min_length=1, max_length=100)


class DistanceDebug(BaseModel):
    eligible_runners_count: int
    distance_threshold_m: float
    requester_has_location: bool


class DispatchResponse(BaseModel):
    status: str
    task_id: str
    task_type: str
    assigned_runner_id: str | None = None
    final_score: float | None = None
    assigned_at: str | None = None
    expires_at: str | None = None
    queue_length: int | None = None
    task_status: str | None = None
    released_runner_id: str | None = None
    debug: DistanceDebug | None = None


class AcceptResponse(BaseModel):
    task_id: str
    task_type: str
    status: str
    runner_id: str
    accepted_at: str


class KindTallyResponse(BaseModel):
    total: int = 0
    reassigned: int = 0
    cleared: int = 0
    skipped: int = 0
    errors: int = 0


class TaskError(BaseModel):
    task_id: str | None = None
    task_type: str
    error: str


class ReassignResponse(BaseModel):
    success: bool
    processed: dict[str, KindTallyResponse]
    errors: list[TaskError] = Field(default_factory=list)


class QueueResponse(BaseModel):
    task_id: str
    task_type: str
    status: str
    runner_id: str | None = None
    notified_runner_id: str | None = None
    notified_at: str | None = None
    notified_expires_at: str | None = None
    ranked_runner_ids: list[str] | None = None
    current_queue_index: int = 0
    timeout_runner_ids: list[str] = Field(default_factory=list)
    declined_runner_id: str | None = None


class ErrorResponse(BaseModel):
    error: str


class RegisterUserRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    role: UserRole = UserRole.caller
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    average_rating: float | None = Field(default=None, ge=0, le=5)


class UserResponse(BaseModel):
    id: str
    name: str
    role: str
    latitude: float | None = None
    longitude: float | None = None
    is_available: bool = False


class CreateTaskRequest(BaseModel):
    requester_id: str = Field(min_length=1, max_length=100)
    title: str = Field(default="", max_length=500)
    categories: list[str] = Field(default_factory=list, max_length=20)


class TaskCreatedResponse(BaseModel):
    task_id: str
    task_type: str
    status: str
    categories: str | None = None


class AvailabilityRequest(BaseModel):
    is_available: bool
    latitude: float | None = None
    longitude: float | None = None


class AvailabilityResponse(BaseModel):
    runner_id: str
    is_available: bool
    allowed: bool | None = None
    reason: str | None = None


class GeofenceResponse(BaseModel):
    allowed: bool
    reason: str | None = None
