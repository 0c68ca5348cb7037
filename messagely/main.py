import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Response, Request, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from messagely import services
from messagely.auth import CorrectUser, CurrentUser
from messagely.config import settings
from messagely.storage import init_db, check_db_health, get_db
from messagely.logging_utils import setup_logging, RequestLoggingMiddleware, log_message_data
from messagely.metrics import record_message_outcome, get_metrics, get_metrics_content_type
from messagely.results import Err, Ok, Result
from messagely.schemas import (
    ErrorResponse,
    HealthResponse,
    MessageDetailResponse,
    ReadReceiptResponse,
    SendMessageRequest,
    SentMessageResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Messagely API",
    description="Direct messages between users with sender/recipient access checks",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Report store failures as 500 without exposing driver details."""
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def _unwrap(request: Request, operation: str, outcome: Result, message_id: Optional[int] = None):
    """
    Record the handler outcome and return its value, or raise its HTTP error.

    When message_id is not given, the id of a successful result is logged.
    """
    if message_id is None and isinstance(outcome, Ok):
        message_id = getattr(outcome.value, "id", None)
    record_message_outcome(operation, outcome.result)
    log_message_data(request, operation=operation, message_id=message_id, result=outcome.result)
    if isinstance(outcome, Err):
        raise outcome.to_http()
    return outcome.value


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. SECRET_KEY is set (non-empty)
    2. DB is reachable and both tables exist

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.SECRET_KEY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="SECRET_KEY not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Message Routes
# =============================================================================

_error_responses = {
    401: {"model": ErrorResponse, "description": "Not logged in or not allowed"},
    404: {"model": ErrorResponse, "description": "Message not found"},
}


@app.get(
    "/messages/{message_id}",
    response_model=MessageDetailResponse,
    responses=_error_responses,
)
async def get_message(
    message_id: int,
    request: Request,
    username: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageDetailResponse:
    """
    Get detail of a message.

    The logged-in user must be either the sender or the recipient.
    """
    logger.info(f"GET /messages/{message_id} by {username}")
    outcome = services.get_message(db, message_id, username)
    return MessageDetailResponse(message=_unwrap(request, "get", outcome, message_id))


@app.post(
    "/messages/",
    response_model=SentMessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: _error_responses[401]},
)
async def send_message(
    payload: SendMessageRequest,
    request: Request,
    username: CurrentUser,
    db: Session = Depends(get_db),
) -> SentMessageResponse:
    """
    Send a message from the logged-in user.

    Body: {to_username, body}. An unknown to_username fails at the database.
    """
    logger.info(f"POST /messages/ from {username} to {payload.to_username}")
    outcome = services.send_message(db, payload, username)
    return SentMessageResponse(message=_unwrap(request, "send", outcome))


@app.post(
    "/messages/{message_id}/read",
    response_model=ReadReceiptResponse,
    responses=_error_responses,
)
async def mark_read(
    message_id: int,
    request: Request,
    username: CorrectUser,
    db: Session = Depends(get_db),
) -> ReadReceiptResponse:
    """
    Mark a message as read.

    Only the recipient may do this; repeated calls re-stamp read_at.
    """
    logger.info(f"POST /messages/{message_id}/read by {username}")
    outcome = services.mark_read(db, message_id, username)
    return ReadReceiptResponse(message=_unwrap(request, "mark_read", outcome, message_id))


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.

    - http_requests_total: Total HTTP requests by method, path, status
    - message_operations_total: Message handler outcomes by operation, result
    - request_latency_seconds: Request latency histogram
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
