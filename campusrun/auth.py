"""Shared-secret guard for the cron-style trigger endpoints."""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request

from campusrun.config import settings


async def verify_trigger_key(request: Request) -> None:
    # Open when no key is configured (local and test setups)
    if settings.trigger_key is None:
        return
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not secrets.compare_digest(auth[7:], settings.trigger_key):
        raise HTTPException(status_code=403, detail="Invalid trigger key")
