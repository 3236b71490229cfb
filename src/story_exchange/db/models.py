"""
SQLAlchemy Models

Defines the database schema for:
- Stories and their embeddings (vector storage with pgvector)
- Suggested stories (rewritten renditions and AI fallbacks)
- The delivery ledger (user received stories)
- The social layer: profiles, follows, reactions, comments, reports
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector


STORY_STATUSES = ("pending", "approved", "rejected")

GENERATION_MATCHED = "matched"
GENERATION_FALLBACK = "ai_generated_fallback"


class Base(DeclarativeBase):
    """Base class for all models."""

    # Fetch server defaults (created_at) on flush; lazy loads are unavailable under asyncio
    __mapper_args__ = {"eager_defaults": True}


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def _created_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------
# Stories
# ---------------------------------------------------------------------

class Story(Base):
    """
    A submitted narrative.

    Only stories with status ``approved`` are visible to matching. The status
    moves out of ``pending`` exactly once.
    """
    __tablename__ = "stories"

    id: Mapped[uuid.UUID] = _uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    language: Mapped[str] = mapped_column(String(16), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    consent: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_story_status",
        ),
        Index("idx_story_status_created", "status", "created_at"),
    )


class StoryEmbedding(Base):
    """
    Embedding and classification derived from an approved story.

    Dimensionality depends on the provider, so the column is unconstrained and
    ``embedding_model`` records which provider produced the vector.
    """
    __tablename__ = "stories_embeddings"

    story_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("stories.id", ondelete="CASCADE"),
        primary_key=True,
    )
    embedding = Column(Vector(), nullable=False)
    embedding_model: Mapped[str] = mapped_column(String(128), nullable=False)
    archetype: Mapped[str] = mapped_column(String(64), nullable=False)
    emotion_tone: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_embedding_model", "embedding_model"),
    )


# ---------------------------------------------------------------------
# Suggested Stories
# ---------------------------------------------------------------------

class SuggestedStory(Base):
    """
    A deliverable artifact: either a rewritten rendition of a real story
    (``matched``) or a synthetic story (``ai_generated_fallback``).

    Shared between recipients; never updated after creation.
    """
    __tablename__ = "suggested_stories"

    id: Mapped[uuid.UUID] = _uuid_pk()
    source_story_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("stories.id", ondelete="CASCADE"),
        nullable=False,
    )
    similar_story_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("stories.id", ondelete="SET NULL"),
        nullable=True,
    )
    target_language: Mapped[str] = mapped_column(String(16), nullable=False)
    rewritten_text: Mapped[str] = mapped_column(Text, nullable=False)
    audio_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    generation_type: Mapped[str] = mapped_column(String(32), nullable=False)
    similarity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    model_versions: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        CheckConstraint(
            "generation_type IN ('matched', 'ai_generated_fallback')",
            name="ck_suggested_generation_type",
        ),
        Index("idx_suggested_source_lang", "source_story_id", "target_language"),
        Index("idx_suggested_lang_created", "target_language", "created_at"),
    )


# ---------------------------------------------------------------------
# Delivery Ledger
# ---------------------------------------------------------------------

class UserReceivedStory(Base):
    """
    A delivery of a suggested story to a recipient.

    ``submission_id`` is the recipient's own story whose submission triggered
    the delivery; at most one delivery exists per submission.
    """
    __tablename__ = "user_received_stories"

    id: Mapped[uuid.UUID] = _uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("stories.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_story_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("stories.id", ondelete="CASCADE"),
        nullable=False,
    )
    suggested_story_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("suggested_stories.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("user_id", "submission_id", name="uq_received_submission"),
        Index("idx_received_user_created", "user_id", "created_at"),
    )


# ---------------------------------------------------------------------
# Social Layer
# ---------------------------------------------------------------------

class Profile(Base):
    __tablename__ = "profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferred_language: Mapped[str] = mapped_column(String(16), nullable=False, default="en")
    created_at: Mapped[datetime] = _created_at()


class Follow(Base):
    __tablename__ = "follows"

    follower: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    followed: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        CheckConstraint("follower <> followed", name="ck_follow_not_self"),
        Index("idx_follow_followed", "followed"),
    )


class Reaction(Base):
    __tablename__ = "reactions"

    id: Mapped[uuid.UUID] = _uuid_pk()
    suggested_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("suggested_stories.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("suggested_id", "user_id", "type", name="uq_reaction_toggle"),
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = _uuid_pk()
    suggested_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("suggested_stories.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_comment_suggested_created", "suggested_id", "created_at"),
    )


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[uuid.UUID] = _uuid_pk()
    suggested_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("suggested_stories.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = _created_at()
