"""Server-sent event stream of tracker changes."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from paperhand.api.dependencies import get_notifier, get_stream_user
from paperhand.services.notifier import EventName, Notifier, QueueChannel, format_sse

router = APIRouter(prefix="/api", tags=["events"])

KEEPALIVE_SEC = 15.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def stream_channel(
    request: Request,
    notifier: Notifier,
    channel: QueueChannel,
    conn_id: int,
    keepalive: float = KEEPALIVE_SEC,
) -> AsyncIterator[str]:
    try:
        while True:
            if await request.is_disconnected():
                break
            # Dropped by the notifier: flush what is queued, then end so the client reconnects
            if channel.closed and channel.queue.empty():
                break
            try:
                frame = await asyncio.wait_for(channel.queue.get(), timeout=keepalive)
            except TimeoutError:
                if channel.closed:
                    break
                yield ": keepalive\n\n"
                continue
            yield frame
    finally:
        channel.close()
        notifier.unregister(conn_id)


@router.get("/events")
async def events(
    request: Request,
    notifier: Notifier = Depends(get_notifier),
    user_id: int | None = Depends(get_stream_user),
) -> StreamingResponse:
    channel = QueueChannel()
    channel.write(format_sse(EventName.CONNECTED.value, {"status": "ok"}))
    conn_id = notifier.register(channel, user_id)
    return StreamingResponse(
        stream_channel(request, notifier, channel, conn_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
