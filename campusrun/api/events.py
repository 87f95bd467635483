"""SSE event stream endpoint."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from campusrun.events import event_bus

logger = logging.getLogger("campusrun.events")

router = APIRouter()

KEEPALIVE_INTERVAL = 30  # seconds


@router.get("/v1/channels/{channel}/events")
async def channel_stream(channel: str, request: Request):
    """Subscribe to offers (``errand_notify_<runner>``, ``commission_notify_<runner>``)
    or requester updates (``caller_notify_<requester>``)."""
    queue = event_bus.subscribe(channel)
    logger.debug("Stream opened on %s (%d listener(s))", channel, event_bus.subscriber_count(channel))

    async def generate():
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_INTERVAL)
                    if event is None:
                        break
                    data = json.dumps({"type": event.type, **event.payload})
                    yield f"event: {event.type}\ndata: {data}\n\n"
                except TimeoutError:
                    yield ": keepalive\n\n"

                if await request.is_disconnected():
                    break
        finally:
            event_bus.unsubscribe(channel, queue)

    return StreamingResponse(generate(), media_type="text/event-stream")
