from __future__ import annotations

import json
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from orchestrator.core.config import Settings
from orchestrator.core.metrics import observe_http_request

logger = logging.getLogger("orchestrator.api")


@dataclass
class FixedWindowRateLimiter:
    """Counts requests per key in fixed windows aligned to `window_seconds`."""

    max_requests: int
    window_seconds: int = 60
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _window: int = -1
    _counts: dict[str, int] = field(default_factory=dict)

    def allow(self, key: str, *, now: float) -> bool:
        window = int(now // self.window_seconds)
        with self._lock:
            if window != self._window:
                # Keys from the previous window are dropped wholesale.
                self._window = window
                self._counts = {}
            count = self._counts.get(key, 0)
            if count >= self.max_requests:
                return False
            self._counts[key] = count + 1
            return True


def rate_limit_key(request: Request, *, user_header: str) -> str:
    # Per caller when the gateway identified one, otherwise per client address.
    user_id = (request.headers.get(user_header) or "").strip()
    if user_id:
        return f"user:{user_id}"
    forwarded_for = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        return f"ip:{forwarded_for.split(',', 1)[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def _request_id(request: Request, *, header_name: str) -> str:
    incoming = (request.headers.get(header_name) or "").strip()
    return incoming[:128] if incoming else secrets.token_urlsafe(18)


def _finish(response: Response, *, request_id: str, settings: Settings) -> None:
    response.headers[settings.REQUEST_ID_HEADER] = request_id
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY)


def install_request_middleware(app: FastAPI, *, settings: Settings) -> None:
    """Request ids, security headers, rate limiting, the access log and HTTP metrics."""
    limiter = (
        FixedWindowRateLimiter(max_requests=settings.RATE_LIMIT_REQUESTS_PER_MINUTE)
        if settings.RATE_LIMIT_REQUESTS_PER_MINUTE > 0
        else None
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = _request_id(request, header_name=settings.REQUEST_ID_HEADER)
        started = time.monotonic()
        rate_limited = False
        status_code = 500

        try:
            key = rate_limit_key(request, user_header=settings.AUTH_USER_ID_HEADER)
            if limiter is not None and not limiter.allow(key, now=time.time()):
                rate_limited = True
                response: Response = JSONResponse(
                    status_code=429,
                    content={"detail": "Rate limit exceeded", "code": "rate_limited"},
                )
            else:
                response = await call_next(request)
            status_code = response.status_code
            _finish(response, request_id=request_id, settings=settings)
            return response
        finally:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.info(
                json.dumps(
                    {
                        "event": "http.request.completed",
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": status_code,
                        "duration_ms": duration_ms,
                        "rate_limited": rate_limited,
                    },
                    separators=(",", ":"),
                    sort_keys=True,
                )
            )
            if settings.ENABLE_PROMETHEUS_METRICS:
                observe_http_request(
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=duration_ms,
                    rate_limited=rate_limited,
                )
