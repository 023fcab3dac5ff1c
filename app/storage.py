import logging
import os
import threading
from typing import Generator, List, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from app.aggregation import summarize_threads
from app.config import settings
from app.errors import PersistenceError
from app.schemas import StoredMessage, ThreadSummary
from app.utils import clamp_limit

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

# Serializes appends so ids are assigned and committed one at a time
_append_lock = threading.Lock()


def init_db() -> None:
    """
    Initialize the database by creating all tables and indexes.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from app.models import Message  # noqa: F401

        # SQLite will not create missing parent directories of its file
        database = engine.url.database
        if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(database)), exist_ok=True)

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        if not inspect(engine).has_table("messages"):
            logger.error("Database schema not applied: 'messages' table not found")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Message Store
# =============================================================================

def append_message(
    db: Session,
    conversation_id: str,
    author: str,
    content: str,
    created_at: str,
    conversation_name: Optional[str] = None,
    author_id: Optional[str] = None,
    avatar_url: Optional[str] = None,
    group_parent_id: Optional[str] = None,
    group_parent_name: Optional[str] = None,
    is_from_respondent: bool = False,
) -> StoredMessage:
    """
    Append a message to the store.

    Args:
        db: Database session
        conversation_id: Conversation the message belongs to
        author: Display name of the author
        content: Message text
        created_at: Producer timestamp, already normalized
        conversation_name: Optional conversation label
        author_id: Optional stable author identity
        avatar_url: Optional author avatar
        group_parent_id: Scope the conversation belongs to
        group_parent_name: Optional scope label
        is_from_respondent: Whether the author is a responder

    Returns:
        The stored message including its assigned id

    Raises:
        PersistenceError: if the write fails; nothing is stored in that case
    """
    from app.models import Message

    logger.info(f"Appending message: conversation={conversation_id}, respondent={is_from_respondent}")
    logger.debug(f"Message details: author={author}, created_at={created_at}")

    message = Message(
        conversation_id=conversation_id,
        conversation_name=conversation_name,
        author=author,
        author_id=author_id,
        avatar_url=avatar_url,
        content=content,
        created_at=created_at,
        group_parent_id=group_parent_id,
        group_parent_name=group_parent_name,
        is_from_respondent=bool(is_from_respondent),
    )

    try:
        with _append_lock:
            db.add(message)
            db.flush()
            stored = StoredMessage.model_validate(message)
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to append message for conversation {conversation_id}: {e}")
        raise PersistenceError(f"Failed to store message: {e.__class__.__name__}") from e

    logger.info(f"Message appended: id={stored.id}")
    return stored


def list_conversations(db: Session, group_parent_id: str) -> List[ThreadSummary]:
    """
    Summarize every conversation in a scope.

    Only rows whose group_parent_id equals the requested scope take part,
    so messages of other scopes never leak into counts.

    Args:
        db: Database session
        group_parent_id: Scope to aggregate

    Returns:
        Ordered thread summaries (see app.aggregation.summarize_threads)
    """
    from app.models import Message

    logger.info(f"Listing conversations for scope: {group_parent_id}")

    try:
        rows = (
            db.query(
                Message.id,
                Message.conversation_id,
                Message.conversation_name,
                Message.author,
                Message.author_id,
                Message.created_at,
                Message.group_parent_id,
                Message.group_parent_name,
                Message.is_from_respondent,
            )
            .filter(Message.group_parent_id == group_parent_id)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to list conversations for scope {group_parent_id}: {e}")
        raise PersistenceError(f"Failed to list conversations: {e.__class__.__name__}") from e

    logger.debug(f"Scanned {len(rows)} messages")
    threads = summarize_threads(rows)
    logger.info(f"Listed {len(threads)} conversations for scope {group_parent_id}")
    return threads


def list_messages(
    db: Session,
    conversation_id: str,
    group_parent_id: Optional[str] = None,
    limit: int = 50,
    after: Optional[str] = None,
) -> List[StoredMessage]:
    """
    Page through a conversation's messages, newest first.

    Args:
        db: Database session
        conversation_id: Conversation to read
        group_parent_id: Optional scope filter
        limit: Page size, clamped to [1, 200]
        after: Only messages with created_at strictly greater than this
            normalized timestamp

    Returns:
        Messages ordered by created_at DESC, id DESC
    """
    from app.models import Message

    limit = clamp_limit(limit)
    logger.info(f"Querying messages: conversation={conversation_id}, limit={limit}")
    logger.debug(f"Filters: scope={group_parent_id}, after={after}")

    query = db.query(Message).filter(Message.conversation_id == conversation_id)

    if group_parent_id:
        query = query.filter(Message.group_parent_id == group_parent_id)

    if after:
        query = query.filter(Message.created_at > after)

    query = query.order_by(Message.created_at.desc(), Message.id.desc())

    try:
        messages = query.limit(limit).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to query messages for conversation {conversation_id}: {e}")
        raise PersistenceError(f"Failed to list messages: {e.__class__.__name__}") from e

    logger.info(f"Retrieved {len(messages)} messages for conversation {conversation_id}")
    return [StoredMessage.model_validate(message) for message in messages]
