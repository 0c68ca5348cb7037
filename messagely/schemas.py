"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SendMessageRequest(BaseModel):
    """
    Body of POST /messages/.

    The sender is the logged-in user, so only the recipient and the
    text are accepted. Whether to_username names a real user is left
    to the database.
    """
    to_username: str = Field(
        ...,
        min_length=1,
        description="Username of the recipient"
    )
    body: str = Field(
        ...,
        description="Message text"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"to_username": "bob", "body": "hello"}
            ]
        }
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class UserSummary(BaseModel):
    """Participant details embedded in a message."""
    username: str
    first_name: str
    last_name: str
    phone: str


class MessageDetail(BaseModel):
    """A message with both participants resolved."""
    id: int = Field(..., description="Message identifier")
    body: str = Field(..., description="Message text")
    sent_at: str = Field(..., description="Send time (ISO-8601 UTC)")
    read_at: Optional[str] = Field(None, description="Read time (ISO-8601 UTC), null until read")
    from_user: UserSummary
    to_user: UserSummary

    @classmethod
    def from_row(cls, row: dict) -> "MessageDetail":
        """Build from the flat row returned by the detail join."""
        return cls(
            id=row["id"],
            body=row["body"],
            sent_at=row["sent_at"],
            read_at=row["read_at"],
            from_user=UserSummary(
                username=row["from_username"],
                first_name=row["from_first_name"],
                last_name=row["from_last_name"],
                phone=row["from_phone"],
            ),
            to_user=UserSummary(
                username=row["to_username"],
                first_name=row["to_first_name"],
                last_name=row["to_last_name"],
                phone=row["to_phone"],
            ),
        )


class SentMessage(BaseModel):
    """A newly stored message, as returned by the insert."""
    id: int
    from_username: str
    to_username: str
    body: str
    sent_at: str


class ReadReceipt(BaseModel):
    """Result of marking a message as read."""
    id: int
    read_at: str


class MessageDetailResponse(BaseModel):
    """Response model for GET /messages/{id}."""
    message: MessageDetail


class SentMessageResponse(BaseModel):
    """Response model for POST /messages/."""
    message: SentMessage


class ReadReceiptResponse(BaseModel):
    """Response model for POST /messages/{id}/read."""
    message: ReadReceipt


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
