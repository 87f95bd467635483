"""Task creation, dispatch, reassignment and offer routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from campusrun.auth import verify_trigger_key
from campusrun.database import get_db_session
from campusrun.kinds import COMMISSION, ERRAND, KindProfile
from campusrun.models import (
    AcceptRequest,
    AcceptResponse,
    CreateTaskRequest,
    DispatchRequest,
    DispatchResponse,
    ErrorResponse,
    QueueResponse,
    ReassignResponse,
    TaskCreatedResponse,
)
from campusrun.services.dispatch import dispatch_task
from campusrun.services.offers import accept_offer, release_runner
from campusrun.services.reassign import reassign_timed_out_tasks
from campusrun.services.tasks import create_task, fetch_task, queue_view
from campusrun.utils import status_str

router = APIRouter()

_BY_PLURAL = {p.plural: p for p in (ERRAND, COMMISSION)}


def _resolve(plural: str) -> KindProfile:
    profile = _BY_PLURAL.get(plural)
    if profile is None:
        raise HTTPException(status_code=404, detail="Unknown task type")
    return profile


async def _dispatch_body(request: Request) -> str:
    try:
        raw = await request.json()
    except ValueError:
        raw = {}
    try:
        body = DispatchRequest.model_validate(raw)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid request body") from None
    if not body.task_id:
        raise HTTPException(status_code=400, detail="Missing task_id")
    return body.task_id


async def _create(profile: KindProfile, body: CreateTaskRequest, session) -> dict:
    task = await create_task(session, profile, body.requester_id, body.title, body.categories)
    return {
        "task_id": task.id,
        "task_type": profile.kind.value,
        "status": status_str(task.status),
        "categories": task.categories,
    }


@router.post(
    "/v1/errands",
    response_model=TaskCreatedResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}},
)
async def create_errand(body: CreateTaskRequest, session=Depends(get_db_session)):
    """Post a new errand. Call `/v1/errands/assign` to dispatch it."""
    return await _create(ERRAND, body, session)


@router.post(
    "/v1/commissions",
    response_model=TaskCreatedResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}},
)
async def create_commission(body: CreateTaskRequest, session=Depends(get_db_session)):
    return await _create(COMMISSION, body, session)


@router.post(
    "/v1/errands/assign",
    response_model=DispatchResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[Depends(verify_trigger_key)],
)
async def assign_errand(request: Request, session=Depends(get_db_session)):
    """Rank runners for a new errand and offer it to the best one."""
    task_id = await _dispatch_body(request)
    return await dispatch_task(session, ERRAND.kind, task_id)


@router.post(
    "/v1/commissions/assign",
    response_model=DispatchResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[Depends(verify_trigger_key)],
)
async def assign_commission(request: Request, session=Depends(get_db_session)):
    """Rank present runners for a new commission and offer it to the best one."""
    task_id = await _dispatch_body(request)
    return await dispatch_task(session, COMMISSION.kind, task_id)


@router.post(
    "/v1/reassign-timed-out-tasks",
    response_model=ReassignResponse,
    dependencies=[Depends(verify_trigger_key)],
)
async def reassign_timed_out(session=Depends(get_db_session)):
    return await reassign_timed_out_tasks(session)


@router.post(
    "/v1/{plural}/{task_id}/accept",
    response_model=AcceptResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def accept(plural: str, task_id: str, body: AcceptRequest, session=Depends(get_db_session)):
    """The runner holding the current offer takes the task."""
    profile = _resolve(plural)
    return await accept_offer(session, profile.kind, task_id, body.runner_id)


@router.post(
    "/v1/commissions/{task_id}/release",
    response_model=DispatchResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def release(task_id: str, session=Depends(get_db_session)):
    """Turn down the accepted runner and dispatch the commission again."""
    return await release_runner(session, task_id)


@router.get(
    "/v1/{plural}/{task_id}/queue",
    response_model=QueueResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_queue(plural: str, task_id: str, session=Depends(get_db_session)):
    profile = _resolve(plural)
    task = await fetch_task(session, profile, task_id)
    if not task:
        raise HTTPException(status_code=404, detail=f"{profile.kind.value.capitalize()} not found")
    return queue_view(profile, task)
