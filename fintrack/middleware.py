import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from . import config

logger = logging.getLogger("fintrack.requests")

SENSITIVE_FIELDS = {"password", "password_confirmation", "current_password"}


def _log_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


async def _payload(request: Request):
    body = await request.body()
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if isinstance(data, dict):
        data = {k: v for k, v in data.items() if k not in SENSITIVE_FIELDS}
    return data or None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every API request and its response.

    Each request gets an id (also returned as the X-Request-ID header) so the
    request and response lines can be matched up. The authenticated user id
    is picked up from ``request.state`` once the route has run.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = f"req_{uuid.uuid4().hex}"
        request.state.request_id = request_id
        started = time.perf_counter()

        context = {
            "request_id": request_id,
            "method": request.method,
            "url": str(request.url),
            "ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
        }
        if request.method != "GET":
            payload = await _payload(request)
            if payload:
                context["payload"] = payload
        logger.info("API Request", extra=context)

        response = await call_next(request)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "user_id": getattr(request.state, "user_id", None),
        }
        if duration_ms > config.SLOW_REQUEST_MS:
            logger.warning("Slow API Request", extra=context)
        logger.log(_log_level(response.status_code), "API Response", extra=context)

        response.headers["X-Request-ID"] = request_id
        return response
