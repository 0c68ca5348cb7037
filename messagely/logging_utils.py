import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from messagely.metrics import record_http_request


# Context variable to store request_id for the current request
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds an ISO-8601 ts, the level name and request_id."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get('ts'):
            log_record['ts'] = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
        log_record['level'] = record.levelname

        if 'request_id' not in log_record:
            req_id = request_id_ctx.get()
            if req_id:
                log_record['request_id'] = req_id


def setup_logging(log_level: str = "INFO"):
    """
    Setup structured JSON logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger = logging.getLogger()
    logger.setLevel(log_level.upper())

    # Remove existing handlers
    logger.handlers = []

    json_handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        '%(ts)s %(level)s %(name)s %(message)s'
    )
    json_handler.setFormatter(formatter)

    logger.addHandler(json_handler)

    # Route Uvicorn loggers through the same JSON handler
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = []
        uvicorn_logger.addHandler(json_handler)
        uvicorn_logger.propagate = False

    # RequestLoggingMiddleware already logs every request
    logging.getLogger("uvicorn.access").disabled = True

    return logger


def _route_path(request: Request) -> str:
    """Route template for the request, falling back to the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an X-Request-ID and emits one
    "Request completed" line when it finishes.

    The line always carries request_id, method, path, status and
    latency_ms. Message routes add what log_message_data attached:
    the operation (get, send, mark_read), the message_id it touched
    and the handler result (ok, not_found, unauthorized). Store
    failures never reach log_message_data, so a 500 line has no result.

    Rejected logins and missing messages log at WARNING, store
    failures at ERROR.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            latency_seconds = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id

            # Scraping /metrics is not counted in its own output
            if request.url.path != "/metrics":
                record_http_request(
                    method=request.method,
                    path=_route_path(request),
                    status=response.status_code,
                    latency_seconds=latency_seconds
                )

            log_data = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(latency_seconds * 1000, 2),
            }
            log_data.update(getattr(request.state, "message_log_data", {}))

            logging.getLogger("messagely.requests").log(
                _level_for(response.status_code), "Request completed", extra=log_data
            )
            return response
        finally:
            request_id_ctx.reset(token)


def log_message_data(request: Request, operation: str, message_id: Optional[int] = None, result: Optional[str] = None):
    """
    Record which message a handler acted on and how it went, for the
    request's "Request completed" line.

    Args:
        request: FastAPI request object
        operation: get, send or mark_read
        message_id: Path id, or the new id for send
        result: ok, not_found or unauthorized
    """
    message_data = {"operation": operation}

    if message_id is not None:
        message_data["message_id"] = message_id

    if result is not None:
        message_data["result"] = result

    request.state.message_log_data = message_data
