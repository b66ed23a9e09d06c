"""Table and index definitions for the users database.

``users`` is declared with its original eight columns only. Columns added
later live in :mod:`userdb.migrations` so that existing deployments and fresh
files converge on the same shape through the same ALTER steps.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()


users = Table(
    "users",
    metadata,
    Column("id", Text, primary_key=True),
    Column("email", Text, unique=True, nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("username", Text),
    Column("bio", Text),
    Column("avatar_url", Text),
    Column("created_at", Integer, nullable=False),
    Column("updated_at", Integer, nullable=False),
)

# author_id is not a foreign key: changelog entries outlive their author.
changelog = Table(
    "changelog",
    metadata,
    Column("id", Text, primary_key=True),
    Column("title", Text, nullable=False),
    Column("content", Text, nullable=False),
    Column("author_id", Text, nullable=False),
    Column("created_at", Integer, nullable=False),
)

feedback = Table(
    "feedback",
    metadata,
    Column("id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("content", Text, nullable=False),
    Column("created_at", Integer, nullable=False),
)

user_settings = Table(
    "user_settings",
    metadata,
    Column("user_id", Text, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("localstorage_data", Text),
    Column("theme", Text, server_default="dark"),
    Column("updated_at", Integer, nullable=False),
)

user_sessions = Table(
    "user_sessions",
    metadata,
    Column("session_id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", Integer, nullable=False),
    Column("expires_at", Integer, nullable=False),
)

comments = Table(
    "comments",
    metadata,
    Column("id", Text, primary_key=True),
    Column("type", Text, nullable=False),
    Column("target_id", Text, nullable=False),
    Column("user_id", Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("content", Text, nullable=False),
    Column("created_at", Integer, nullable=False),
)

likes = Table(
    "likes",
    metadata,
    Column("id", Text, primary_key=True),
    Column("type", Text, nullable=False),
    Column("target_id", Text, nullable=False),
    Column("user_id", Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", Integer, nullable=False),
    UniqueConstraint("type", "target_id", "user_id"),
)

# Created separately so that tables which predate an index still receive it.
INDEXES = (
    Index("idx_users_email", users.c.email),
    Index("idx_sessions_user_id", user_sessions.c.user_id),
    Index("idx_sessions_expires", user_sessions.c.expires_at),
)


DEPENDENT_TABLES = (
    changelog,
    feedback,
    user_settings,
    user_sessions,
    comments,
    likes,
)
