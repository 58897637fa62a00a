"""
Database Schema: SQLAlchemy Core Table Definitions

Defines the content store table using SQLAlchemy Core for type-safe query
building. Portable across PostgreSQL (production) and SQLite (tests).
"""

from sqlalchemy import Column, DateTime, Index, MetaData, String, Table, Text, func

# Metadata instance for all tables
metadata = MetaData()

# Generated content, one row per orchestration
contents_table = Table(
    "contents",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("title", String(500), nullable=False),
    Column("content", Text, nullable=False),
    Column("platform", String(32), nullable=False),
    Column("content_type", String(32), nullable=False),
    Column("user_id", String(255), nullable=True, index=True),
    Column("category", String(100)),
    Column("image_url", Text),
    Column("video_url", Text),
    Column("created_at", DateTime, default=func.now(), nullable=False, index=True),
    # Composite index for per-user history queries
    Index("idx_contents_user_created", "user_id", "created_at"),
)
