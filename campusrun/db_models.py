"""SQLModel table definitions for campusrun."""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class UserRole(str, enum.Enum):
    caller = "caller"
    runner = "runner"


class TaskStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    delivered = "delivered"
    completed = "completed"
    cancelled = "cancelled"


class TaskKind(str, enum.Enum):
    errand = "errand"
    commission = "commission"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    name: str
    role: UserRole = Field(default=UserRole.caller, index=True)
    latitude: float | None = None
    longitude: float | None = None
    last_seen_at: datetime | None = Field(default=None, index=True)
    location_updated_at: datetime | None = None
    is_available: bool = Field(default=False, index=True)
    average_rating: float | None = None  # 0..5
    created_at: datetime = Field(default_factory=_utcnow)


class TaskBase(SQLModel):
    """Columns shared by errands and commissions."""

    id: str = Field(primary_key=True)
    requester_id: str = Field(foreign_key="users.id", index=True)
    title: str = ""
    categories: str | None = None  # comma-separated labels
    status: TaskStatus = Field(default=TaskStatus.pending, index=True)
    runner_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    notified_runner_id: str | None = Field(default=None, index=True)
    notified_at: datetime | None = Field(default=None, index=True)
    notified_expires_at: datetime | None = None
    is_notified: bool = Field(default=False)
    ranked_runner_ids: str | None = None  # JSON-encoded list, set once at dispatch
    current_queue_index: int = Field(default=0)
    timeout_runner_ids: str | None = None  # JSON-encoded list, append-only
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None


class Errand(TaskBase, table=True):
    __tablename__ = "errands"


class Commission(TaskBase, table=True):
    __tablename__ = "commissions"

    declined_runner_id: str | None = None
