"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Boolean, Column, Index, Integer, String, Text

from app.storage import Base


class Message(Base):
    """
    SQLAlchemy model for relayed chat messages.

    Table: messages
    Primary Key: id (autoincrement, never reused, follows insertion order)
    Rows are append-only: nothing updates or deletes them.
    """
    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_conversation_created_at", "conversation_id", "created_at"),
        Index(
            "idx_messages_group_parent",
            "group_parent_id",
            "conversation_id",
            "created_at",
        ),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String, nullable=False)
    conversation_name = Column(String, nullable=True)
    author = Column(String, nullable=False)
    author_id = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(String, nullable=False)  # Producer time, normalized ISO-8601 UTC
    group_parent_id = Column(String, nullable=True)
    group_parent_name = Column(String, nullable=True)
    is_from_respondent = Column(Boolean, nullable=False, default=False)
