"""
Pydantic schemas for request/response validation.

This module contains:
- The ingestion payload model
- Response models for API responses (camelCase on the wire)
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Pydantic Request Models
# =============================================================================

class IncomingMessage(BaseModel):
    """
    Raw ingestion payload as sent by the upstream chat listener.

    Every field is optional here; presence and emptiness of the required
    ones are checked by the ingestion gateway so it can classify the
    rejection. The listener's legacy names (threadId, threadParentId,
    isSupportAgent, ...) are accepted as aliases.
    """
    author: Optional[str] = None
    author_id: Optional[str] = Field(None, validation_alias="authorId")
    avatar_url: Optional[str] = Field(None, validation_alias="avatarUrl")
    content: Optional[str] = None
    created_at: Optional[str] = Field(None, validation_alias="createdAt")
    conversation_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("conversationId", "threadId", "channelId"),
    )
    conversation_name: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("conversationName", "threadName", "channelName"),
    )
    group_parent_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("groupParentId", "threadParentId"),
    )
    group_parent_name: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("groupParentName", "threadParentName"),
    )
    is_from_respondent: bool = Field(
        False,
        validation_alias=AliasChoices("isFromRespondent", "isSupportAgent"),
    )

    @field_validator("is_from_respondent", mode="before")
    @classmethod
    def coerce_respondent_flag(cls, v) -> bool:
        """Any truthy value marks a respondent; absent or falsy means a participant."""
        return bool(v)

    @field_validator(
        "author_id",
        "avatar_url",
        "conversation_name",
        "group_parent_id",
        "group_parent_name",
        mode="before",
    )
    @classmethod
    def lenient_optional_text(cls, v) -> Optional[str]:
        """Numeric ids and labels become strings; other non-text values are dropped."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return None

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "author": "alice",
                    "authorId": "1001",
                    "content": "My order never arrived",
                    "createdAt": "2025-01-15T10:00:00.000000Z",
                    "conversationId": "t-42",
                    "conversationName": "Missing order",
                    "groupParentId": "support",
                    "groupParentName": "Support",
                    "isFromRespondent": False,
                }
            ]
        },
    )


# =============================================================================
# Pydantic Response Models
# =============================================================================

class CamelModel(BaseModel):
    """Base for response models serialized with camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,  # Allow creating from ORM objects
    )


class StoredMessage(CamelModel):
    """A message as persisted, including its store-assigned id."""
    id: int = Field(..., description="Store-assigned id, increasing with insertion order")
    conversation_id: str
    conversation_name: Optional[str] = None
    author: str
    author_id: Optional[str] = None
    avatar_url: Optional[str] = None
    content: str
    created_at: str = Field(..., description="Producer timestamp (ISO-8601 UTC)")
    group_parent_id: Optional[str] = None
    group_parent_name: Optional[str] = None
    is_from_respondent: bool = False


class ThreadSummary(CamelModel):
    """
    Read-time projection of one conversation within a scope.

    Recomputed from stored messages on every request.
    """
    id: str
    name: str = Field(..., description="Last non-empty conversation name, else the id")
    last_message_at: Optional[str] = None
    message_count: int = Field(..., ge=0)
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None
    owner_name: Optional[str] = None
    owner_id: Optional[str] = None
    last_message_from_respondent: bool = False
    last_respondent_message_at: Optional[str] = None
    pending_count: int = Field(0, ge=0)


class IngestResponse(BaseModel):
    """Response for a stored message."""
    id: int


class IgnoredResponse(BaseModel):
    """Response for an out-of-scope message that was acknowledged but not stored."""
    ignored: bool = True


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
