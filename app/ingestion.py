"""
Ingestion gateway: validate an incoming payload, store it, fan it out.

Checks run in a fixed order and the first failure wins:
1. required fields (author, content, createdAt, conversationId) -> InvalidPayload
2. group parent id present -> MissingScope
3. group parent id equals the deployment scope -> otherwise ignored

Only a fully validated payload reaches the store.
"""

import logging
from typing import Any, NamedTuple, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.broadcaster import Broadcaster
from app.errors import InvalidPayload, MissingScope
from app.schemas import IncomingMessage, StoredMessage
from app.storage import append_message
from app.utils import normalize_timestamp

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("author", "content", "created_at", "conversation_id")


class IngestResult(NamedTuple):
    """Outcome of an accepted ingestion: a stored message, or ignored."""
    message: Optional[StoredMessage] = None
    ignored: bool = False


def validate_payload(payload: Any) -> IncomingMessage:
    """
    Parse a raw payload and check its required fields.

    Returns:
        The parsed payload with created_at normalized

    Raises:
        InvalidPayload: on malformed input or a missing/empty required field
    """
    if isinstance(payload, IncomingMessage):
        incoming = payload
    else:
        try:
            incoming = IncomingMessage.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Malformed payload: {e.error_count()} validation error(s)")
            raise InvalidPayload() from e

    missing = [name for name in REQUIRED_FIELDS if not (getattr(incoming, name) or "").strip()]
    if missing:
        logger.warning(f"Payload missing required fields: {missing}")
        raise InvalidPayload()

    try:
        created_at = normalize_timestamp(incoming.created_at)
    except ValueError as e:
        logger.warning(f"Invalid createdAt: {e}")
        raise InvalidPayload() from e

    return incoming.model_copy(update={"created_at": created_at})


def ingest(
    db: Session,
    broadcaster: Broadcaster,
    payload: Any,
    scope_id: str,
) -> IngestResult:
    """
    Validate, store and broadcast one message.

    Args:
        db: Database session
        broadcaster: Live subscriber fan-out
        payload: Raw payload (dict) or an IncomingMessage
        scope_id: The deployment's configured group parent id

    Returns:
        IngestResult with the stored message, or ignored=True when the
        message belongs to another scope (nothing stored or broadcast)

    Raises:
        InvalidPayload: missing or malformed required field
        MissingScope: no group parent id
        PersistenceError: the store failed; nothing was broadcast
    """
    incoming = validate_payload(payload)

    if not incoming.group_parent_id:
        logger.warning(f"Payload for conversation {incoming.conversation_id} has no scope")
        raise MissingScope()

    if incoming.group_parent_id != scope_id:
        logger.info(
            f"Ignoring message for scope {incoming.group_parent_id} "
            f"(configured scope: {scope_id})"
        )
        return IngestResult(ignored=True)

    stored = append_message(
        db=db,
        conversation_id=incoming.conversation_id,
        author=incoming.author,
        content=incoming.content,
        created_at=incoming.created_at,
        conversation_name=incoming.conversation_name,
        author_id=incoming.author_id,
        avatar_url=incoming.avatar_url,
        group_parent_id=incoming.group_parent_id,
        group_parent_name=incoming.group_parent_name,
        is_from_respondent=incoming.is_from_respondent,
    )

    broadcaster.publish(stored)
    return IngestResult(message=stored)
