import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, List, Optional

from fastapi import FastAPI, Response, Request, Depends, HTTPException, status, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sse_starlette.sse import EventSourceResponse

from app.broadcaster import Broadcaster, stream_events
from app.config import settings
from app.errors import InvalidPayload, MissingScope, PersistenceError
from app.ingestion import ingest
from app.logging_utils import setup_logging, RequestLoggingMiddleware, log_ingest_data
from app.metrics import record_ingest_outcome, get_metrics, get_metrics_content_type
from app.schemas import (
    ErrorResponse,
    HealthResponse,
    IgnoredResponse,
    IngestResponse,
    StoredMessage,
    ThreadSummary,
)
from app.storage import init_db, check_db_health, get_db, list_conversations, list_messages
from app.utils import clamp_limit, normalize_timestamp


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables and the broadcaster shared by ingestion and /stream.
    """
    init_db()
    app.state.broadcaster = Broadcaster(max_queue_size=settings.SUBSCRIBER_QUEUE_SIZE)
    if not settings.FRONTEND_URL:
        logger.warning("FRONTEND_URL is not set, CORS is open")
    logger.info(f"Relaying messages for scope {settings.SCOPE_ID}")
    yield
    logger.info(f"Shutting down with {app.state.broadcaster.subscriber_count} live subscribers")


app = FastAPI(
    title="Support Relay API",
    description="Relays chat messages into a store, streams them live and ranks threads needing a reply",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL or "*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    schema is applied; otherwise 503 (Service Unavailable).

    SCOPE_ID is a required setting, so the app does not start without it.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Ingestion Route
# =============================================================================

@app.post(
    "/messages",
    response_model=IngestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        202: {"model": IgnoredResponse, "description": "Message belongs to another scope"},
        400: {"model": ErrorResponse, "description": "Invalid payload or missing scope"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    }
)
async def post_message(
    request: Request,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """
    Ingest a message captured by the upstream chat listener.

    - 201 {"id": n}: stored and broadcast to live subscribers
    - 202 {"ignored": true}: group parent id is not this deployment's scope
    - 400: required field missing/empty, or no group parent id
    """
    logger.info("Ingestion request received")

    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Invalid JSON: {e}")
        payload = None

    conversation_id = None
    if isinstance(payload, dict):
        conversation_id = payload.get("conversationId") or payload.get("threadId")
        if not isinstance(conversation_id, str):
            conversation_id = None

    try:
        result = ingest(db=db, broadcaster=broadcaster, payload=payload, scope_id=settings.SCOPE_ID)
    except InvalidPayload as e:
        record_ingest_outcome("invalid_payload")
        log_ingest_data(request, result="invalid_payload", conversation_id=conversation_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.detail)
    except MissingScope as e:
        record_ingest_outcome("missing_scope")
        log_ingest_data(request, result="missing_scope", conversation_id=conversation_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.detail)
    except PersistenceError as e:
        record_ingest_outcome("persistence_error")
        log_ingest_data(request, result="persistence_error", conversation_id=conversation_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.detail)

    if result.ignored:
        record_ingest_outcome("ignored")
        log_ingest_data(request, result="ignored", conversation_id=conversation_id)
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=IgnoredResponse().model_dump(),
        )

    record_ingest_outcome("created")
    log_ingest_data(
        request,
        result="created",
        message_id=result.message.id,
        conversation_id=result.message.conversation_id,
    )
    logger.info(f"Message stored: id={result.message.id}")
    return IngestResponse(id=result.message.id)


# =============================================================================
# Read Routes
# =============================================================================

@app.get(
    "/conversations",
    response_model=List[ThreadSummary],
    responses={500: {"model": ErrorResponse, "description": "Storage failure"}},
)
async def get_conversations(db: Session = Depends(get_db)) -> List[ThreadSummary]:
    """
    List conversations of the configured scope.

    Ordering: threads whose last message is not from a respondent come
    first, then by last activity, newest first.
    """
    logger.info(f"GET /conversations: scope={settings.SCOPE_ID}")
    try:
        return list_conversations(db, settings.SCOPE_ID)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.detail)


@app.get(
    "/conversations/{conversation_id}/messages",
    response_model=List[StoredMessage],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid after cursor"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
)
async def get_conversation_messages(
    conversation_id: str,
    limit: Annotated[Optional[str], Query(description="Page size, clamped to 1..200 (default 50)")] = None,
    after: Annotated[Optional[str], Query(description="Only messages created strictly after this ISO-8601 timestamp")] = None,
    db: Session = Depends(get_db),
) -> List[StoredMessage]:
    """
    List a conversation's messages in the configured scope, newest first.

    Query Parameters:
        - limit: numeric page size, clamped to [1, 200]; non-numeric means 50
        - after: cursor, returns only messages with createdAt > after
    """
    page_size = clamp_limit(limit)

    cursor = None
    if after:
        try:
            cursor = normalize_timestamp(after)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid after cursor"
            )

    logger.info(f"GET /conversations/{conversation_id}/messages: limit={page_size}, after={cursor}")
    try:
        return list_messages(
            db=db,
            conversation_id=conversation_id,
            group_parent_id=settings.SCOPE_ID,
            limit=page_size,
            after=cursor,
        )
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.detail)


# =============================================================================
# Live Stream Route
# =============================================================================

@app.get("/stream")
async def stream(broadcaster: Broadcaster = Depends(get_broadcaster)) -> EventSourceResponse:
    """
    Server-Sent Events stream of ingested messages.

    First event is {"type": "connected"}, then one
    {"type": "message", "data": {...}} per stored message, until the
    client disconnects.
    """
    return EventSourceResponse(
        stream_events(broadcaster),
        ping=settings.SSE_PING_SECONDS,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
