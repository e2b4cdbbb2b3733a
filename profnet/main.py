import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from profnet import friends, graph, messaging
from profnet.authorization import MessagingPolicy
from profnet.config import settings
from profnet.errors import NotFound, ProfNetError
from profnet.logging_utils import setup_logging, RequestLoggingMiddleware
from profnet.metrics import get_metrics, get_metrics_content_type
from profnet.models import DeleteStatus
from profnet.repository import RecordStore
from profnet.storage import init_db, get_db
from profnet.schemas import (
    DistanceResponse,
    ErrorResponse,
    FriendRequestCreate,
    FriendRequestDecision,
    FriendRequestResponse,
    FriendRequestsListResponse,
    FriendsResponse,
    HealthResponse,
    MessageCreate,
    MessageDeleteResponse,
    MessageResponse,
    MessageSentResponse,
    MessagesListResponse,
    UserCreate,
    UserResponse,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "invalid_request": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "unauthorized": status.HTTP_403_FORBIDDEN,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "conflict": status.HTTP_409_CONFLICT,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    403: {"model": ErrorResponse, "description": "Unauthorized or forbidden by policy"},
    404: {"model": ErrorResponse, "description": "Not found"},
    409: {"model": ErrorResponse, "description": "Concurrent update, retry"},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="ProfNet API",
    description="Session layer for connection-gated messaging in a professional network",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(ProfNetError)
async def profnet_error_handler(request: Request, exc: ProfNetError) -> JSONResponse:
    """Render core errors as {"error": code, "detail": message}."""
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
        content={"error": exc.code, "detail": exc.message},
    )


# =============================================================================
# Dependencies
# =============================================================================

def get_store(db: Session = Depends(get_db)) -> RecordStore:
    return RecordStore(db)


def get_policy() -> MessagingPolicy:
    return MessagingPolicy.from_settings()


def get_actor(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
    store: RecordStore = Depends(get_store),
) -> str:
    """
    Resolve the acting member from the X-User-Id header.

    Credential checks happen upstream; here the id only has to exist.
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing X-User-Id")
    if not store.user_exists(x_user_id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unknown user")
    return x_user_id


Store = Annotated[RecordStore, Depends(get_store)]
Actor = Annotated[str, Depends(get_actor)]
Policy = Annotated[MessagingPolicy, Depends(get_policy)]


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response, store: Store) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and every
    table exists; 503 otherwise.
    """
    if not store.check_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


# =============================================================================
# User Routes
# =============================================================================

@app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
def register_user(payload: UserCreate, store: Store) -> UserResponse:
    user = store.atomic(
        lambda: store.create_user(
            user_id=payload.user_id,
            name=payload.name,
            email=payload.email,
            birthdate=payload.birthdate,
            credential_ref=payload.credential_ref,
        ),
        "register_user",
    )
    return UserResponse.model_validate(user)


@app.get("/users/{user_id}", response_model=UserResponse, responses=ERROR_RESPONSES)
def lookup_user(user_id: str, actor: Actor, store: Store) -> UserResponse:
    """Exact lookup of a member's public profile."""
    user = store.get_user(user_id)
    if user is None:
        raise NotFound("There are no users with this id")
    return UserResponse.model_validate(user)


# =============================================================================
# Graph Routes
# =============================================================================

@app.get("/graph/distance", response_model=DistanceResponse, responses=ERROR_RESPONSES)
def get_distance(
    actor: Actor,
    store: Store,
    target: Annotated[str, Query(min_length=1, description="Member to measure the distance to")],
    max_depth: Annotated[int, Query(ge=0, le=10, description="Maximum edges to traverse")] = 3,
) -> DistanceResponse:
    hops = graph.distance(store, actor, target, max_depth)
    return DistanceResponse(
        source=actor,
        target=target,
        max_depth=max_depth,
        distance=hops,
        reachable=hops is not None,
    )


@app.get("/friends", response_model=FriendsResponse)
def list_friends(actor: Actor, store: Store) -> FriendsResponse:
    return FriendsResponse(user_id=actor, friends=sorted(graph.neighbours(store, actor)))


@app.delete("/friends/{other}", status_code=status.HTTP_204_NO_CONTENT, responses=ERROR_RESPONSES)
def remove_friend(other: str, actor: Actor, store: Store) -> Response:
    friends.unfriend(store, actor, other)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Friend Request Routes
# =============================================================================

@app.post(
    "/friend-requests",
    response_model=FriendRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
def create_friend_request(payload: FriendRequestCreate, actor: Actor, store: Store) -> FriendRequestResponse:
    request = friends.send_request(store, actor, payload.to_user)
    return FriendRequestResponse.model_validate(request)


@app.post(
    "/friend-requests/resend",
    response_model=FriendRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
def resend_friend_request(payload: FriendRequestCreate, actor: Actor, store: Store) -> FriendRequestResponse:
    request = friends.resend_request(store, actor, payload.to_user)
    return FriendRequestResponse.model_validate(request)


@app.get("/friend-requests/incoming", response_model=FriendRequestsListResponse)
def incoming_friend_requests(actor: Actor, store: Store) -> FriendRequestsListResponse:
    requests = friends.list_incoming(store, actor)
    return FriendRequestsListResponse(data=[FriendRequestResponse.model_validate(r) for r in requests])


@app.get("/friend-requests/outgoing", response_model=FriendRequestsListResponse)
def outgoing_friend_requests(actor: Actor, store: Store) -> FriendRequestsListResponse:
    requests = friends.list_outgoing(store, actor)
    return FriendRequestsListResponse(data=[FriendRequestResponse.model_validate(r) for r in requests])


@app.post("/friend-requests/{request_id}/respond", response_model=FriendRequestResponse, responses=ERROR_RESPONSES)
def respond_friend_request(
    request_id: int, payload: FriendRequestDecision, actor: Actor, store: Store
) -> FriendRequestResponse:
    request = friends.respond(store, request_id, actor, payload.accept)
    return FriendRequestResponse.model_validate(request)


# =============================================================================
# Message Routes
# =============================================================================

@app.post(
    "/messages",
    response_model=MessageSentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
def send_message(payload: MessageCreate, actor: Actor, store: Store, policy: Policy) -> MessageSentResponse:
    message_id = messaging.send(store, actor, payload.receiver, payload.content, policy)
    return MessageSentResponse(message_id=message_id)


@app.get("/messages", response_model=MessagesListResponse)
def list_messages(actor: Actor, store: Store) -> MessagesListResponse:
    """Messages the actor sent or received and has not deleted, oldest first."""
    messages = messaging.list_visible(store, actor)
    data = [MessageResponse.model_validate(msg) for msg in messages]
    return MessagesListResponse(data=data, total=len(data))


@app.delete("/messages/{message_id}", response_model=MessageDeleteResponse, responses=ERROR_RESPONSES)
def delete_message(message_id: int, actor: Actor, store: Store) -> MessageDeleteResponse:
    result = messaging.delete(store, message_id, actor)
    return MessageDeleteResponse(
        message_id=result.message_id,
        sender_deleted=bool(result.delete_status & DeleteStatus.SENDER),
        receiver_deleted=bool(result.delete_status & DeleteStatus.RECEIVER),
        purged=result.purged,
    )


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
