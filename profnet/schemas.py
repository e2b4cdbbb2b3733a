"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from profnet.messaging import MAX_CONTENT_LENGTH


# =============================================================================
# Pydantic Request Models
# =============================================================================

class UserCreate(BaseModel):
    """
    Registration payload.

    Validates:
    - user_id: non-empty, no whitespace
    - email: contains a single '@'
    - birthdate: optional ISO date (YYYY-MM-DD)
    """
    user_id: str = Field(..., min_length=1, max_length=64, description="Unique member id")
    name: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., min_length=3, description="Contact email")
    birthdate: Optional[str] = Field(None, description="Birthdate as YYYY-MM-DD")
    credential_ref: Optional[str] = Field(
        None, description="Opaque credential reference owned by the login layer"
    )

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        if any(ch.isspace() for ch in v):
            raise ValueError("user_id must not contain whitespace")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if v.count("@") != 1 or v.startswith("@") or v.endswith("@"):
            raise ValueError("email must look like name@domain")
        return v

    @field_validator("birthdate")
    @classmethod
    def validate_birthdate(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            date.fromisoformat(v)
        except ValueError:
            raise ValueError("birthdate must be a valid date (YYYY-MM-DD)")
        return v


class FriendRequestCreate(BaseModel):
    to_user: str = Field(..., min_length=1, description="Recipient of the request")


class FriendRequestDecision(BaseModel):
    accept: bool = Field(..., description="True to accept, False to reject")


class MessageCreate(BaseModel):
    receiver: str = Field(..., min_length=1, description="Recipient member id")
    content: str = Field(
        ...,
        min_length=1,
        max_length=MAX_CONTENT_LENGTH,
        description="Message text content"
    )


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for core errors."""
    error: str = Field(..., description="Error code")
    detail: str = Field(..., description="Error description")


class UserResponse(BaseModel):
    user_id: str
    name: str
    email: str
    birthdate: Optional[str] = None
    created_at: str

    model_config = {"from_attributes": True}


class FriendRequestResponse(BaseModel):
    id: int
    from_user: str
    to_user: str
    state: str
    created_at: str
    responded_at: Optional[str] = None

    model_config = {"from_attributes": True}


class FriendRequestsListResponse(BaseModel):
    data: list[FriendRequestResponse] = Field(default_factory=list)


class FriendsResponse(BaseModel):
    user_id: str
    friends: list[str] = Field(default_factory=list, description="Connected member ids, sorted")


class DistanceResponse(BaseModel):
    """
    Bounded distance result.

    distance is null when the target is unreachable within max_depth.
    """
    source: str
    target: str
    max_depth: int = Field(..., ge=0)
    distance: Optional[int] = Field(None, ge=0)
    reachable: bool


class MessageSentResponse(BaseModel):
    message_id: int


class MessageResponse(BaseModel):
    """
    Response model for a single visible message.
    Maps database fields to API response format.
    """
    id: int = Field(..., description="Message identifier")
    sender: str
    receiver: str
    content: str
    sent_at: str = Field(..., description="Send timestamp (ISO-8601 UTC)")
    status: str = Field(..., description="Delivery status")

    model_config = {"from_attributes": True}


class MessagesListResponse(BaseModel):
    data: list[MessageResponse] = Field(default_factory=list, description="Visible messages, oldest first")
    total: int = Field(..., ge=0)


class MessageDeleteResponse(BaseModel):
    message_id: int
    sender_deleted: bool
    receiver_deleted: bool
    purged: bool


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
