"""In-memory rate limiter for the model-backed endpoints.

Counts requests per client IP in a sliding window. Only paths that end up
calling a language or vision model are limited.
"""

import logging
import re
import time
from collections import defaultdict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

RATE_LIMIT = 30            # max requests
RATE_WINDOW = 60           # per 60 seconds
CLEANUP_INTERVAL = 300     # clean stale entries every 5 minutes

LIMITED_PATHS = re.compile(
    r"^/api/(analyze-image|bots/generate|chat/[^/]+|bots/[^/]+/chat)/?$"
)

_request_log: dict[str, list[float]] = defaultdict(list)
_last_cleanup: float = 0


def _cleanup_stale() -> None:
    """Drop IPs with no request in the last two windows."""
    global _last_cleanup
    now = time.time()
    if now - _last_cleanup < CLEANUP_INTERVAL:
        return
    _last_cleanup = now
    cutoff = now - RATE_WINDOW * 2
    stale_ips = [ip for ip, ts_list in _request_log.items() if not ts_list or ts_list[-1] < cutoff]
    for ip in stale_ips:
        del _request_log[ip]


def _is_rate_limited(ip: str) -> bool:
    now = time.time()
    cutoff = now - RATE_WINDOW

    _request_log[ip] = [ts for ts in _request_log[ip] if ts > cutoff]
    if len(_request_log[ip]) >= RATE_LIMIT:
        return True

    _request_log[ip].append(now)
    return False


def reset() -> None:
    global _last_cleanup
    _request_log.clear()
    _last_cleanup = 0


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class ModelRateLimitMiddleware(BaseHTTPMiddleware):
    """Rate-limit POSTs to endpoints that call a model."""

    async def dispatch(self, request: Request, call_next):
        if request.method == "POST" and LIMITED_PATHS.match(request.url.path):
            _cleanup_stale()
            ip = client_ip(request)
            if _is_rate_limited(ip):
                logger.warning("[RateLimit] Blocked %s %s from %s", request.method, request.url.path, ip)
                return JSONResponse(
                    {"detail": "Too many requests. Please try again later."},
                    status_code=429,
                    headers={"Retry-After": str(RATE_WINDOW)},
                )
        return await call_next(request)
