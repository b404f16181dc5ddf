import asyncio
import json
import logging
import os
import threading
from collections import deque
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from starlette.responses import StreamingResponse


def _require_log_access() -> None:
    """Log endpoints exist only when DRUID_EXPOSE_LOGS is set (local debugging)."""
    if os.environ.get("DRUID_EXPOSE_LOGS", "").lower() not in ("1", "true", "yes"):
        raise HTTPException(status_code=404, detail="Not Found")


router = APIRouter(
    prefix="/api/logs",
    tags=["logs"],
    dependencies=[Depends(_require_log_access)],
)


class BufferedLogHandler(logging.Handler):
    """Keeps the most recent records in memory and pushes new ones to SSE listeners."""

    def __init__(self, maxlen: int = 500):
        super().__init__()
        self._buffer: deque[dict] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._listeners: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []

    def emit(self, record: logging.LogRecord):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "levelno": record.levelno,
            "name": record.name,
            "message": self.format(record),
        }
        with self._lock:
            self._buffer.append(entry)
            listeners = list(self._listeners)

        for loop, queue in listeners:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, entry)
            except RuntimeError:
                # Loop already closed; the stream's finally block will unsubscribe
                pass

    def snapshot(self, min_level: int = logging.NOTSET) -> list[dict]:
        with self._lock:
            return [e for e in self._buffer if e["levelno"] >= min_level]

    def clear(self):
        with self._lock:
            self._buffer.clear()

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._listeners.append((asyncio.get_running_loop(), queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        with self._lock:
            self._listeners = [(lp, q) for lp, q in self._listeners if q is not queue]


log_handler = BufferedLogHandler()
log_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))


def _parse_level(level: Optional[str]) -> int:
    if not level:
        return logging.NOTSET
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise HTTPException(status_code=400, detail=f"Unknown log level: {level}")
    return value


@router.get("")
async def get_logs(level: Optional[str] = None):
    return {"logs": log_handler.snapshot(_parse_level(level))}


async def _log_stream(handler: BufferedLogHandler, min_level: int):
    queue = handler.subscribe()
    try:
        for entry in handler.snapshot(min_level):
            yield f"data: {json.dumps(entry)}\n\n"

        while True:
            try:
                entry = await asyncio.wait_for(queue.get(), timeout=30)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            if entry["levelno"] >= min_level:
                yield f"data: {json.dumps(entry)}\n\n"
    finally:
        handler.unsubscribe(queue)


@router.get("/stream")
async def stream_logs(level: Optional[str] = None):
    return StreamingResponse(
        _log_stream(log_handler, _parse_level(level)),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.delete("")
async def clear_logs():
    log_handler.clear()
    return {"status": "ok"}
