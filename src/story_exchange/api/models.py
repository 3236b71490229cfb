"""
API Models for the Story Exchange

This module defines the Pydantic models used for request/response validation
across submission, moderation, feed, social and inbox endpoints.

Conventions
-----------
- Top-level request and response fields use camelCase on the wire
  (``storyId``, ``receivedStoryId``, ``hasMore``) and snake_case in Python.
  Models accept either form on input.
- Nested records (stories, suggestions, comments, profiles) are serialized
  with their column names, as stored.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Literal

from pydantic import BaseModel, Field, ConfigDict


DEFAULT_TARGET_LANGUAGES = ["en", "pt-BR", "es"]


# ---------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------

class StoryOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    language: str
    text: str
    status: str
    consent: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SuggestionOut(BaseModel):
    id: uuid.UUID
    source_story_id: uuid.UUID
    similar_story_id: Optional[uuid.UUID] = None
    target_language: str
    rewritten_text: str
    audio_url: Optional[str] = None
    generation_type: str
    similarity: Optional[float] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ClassificationOut(BaseModel):
    archetype: str
    emotion_tone: str

    model_config = ConfigDict(from_attributes=True)


class CommentAuthor(BaseModel):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class CommentOut(BaseModel):
    id: uuid.UUID
    suggested_id: uuid.UUID
    user_id: uuid.UUID
    text: str
    created_at: Optional[datetime] = None
    profiles: Optional[CommentAuthor] = None

    model_config = ConfigDict(from_attributes=True)


class ReportOut(BaseModel):
    id: uuid.UUID
    suggested_id: uuid.UUID
    user_id: uuid.UUID
    reason: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileOut(BaseModel):
    user_id: uuid.UUID
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    preferred_language: str = "en"
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------

class SubmitRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000)
    language: str = Field(default="en", min_length=2, max_length=16)
    consent: bool

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class SubmitResponse(BaseModel):
    success: bool = True
    story: StoryOut
    received_story_id: Optional[uuid.UUID] = Field(default=None, alias="receivedStoryId")
    classification: ClassificationOut
    delivery_state: str = Field(..., alias="deliveryState")

    model_config = ConfigDict(populate_by_name=True)


class RejectionResponse(BaseModel):
    """
    Body returned with a 400 when moderation rejects submitted text.
    """
    success: bool = False
    error: str
    reason: Optional[str] = None
    severity: Optional[str] = None


# ---------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------

class ModerationQueueResponse(BaseModel):
    success: bool = True
    stories: List[StoryOut]
    count: int


class ModerateRequest(BaseModel):
    story_id: uuid.UUID = Field(..., alias="storyId")
    action: Literal["approve", "reject"]

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ModerateResponse(BaseModel):
    success: bool = True
    story: StoryOut
    message: str


class CommentModerationRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ModerationResult(BaseModel):
    approved: bool
    reason: Optional[str] = None
    severity: Optional[str] = None


# ---------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------

class ProcessStoryRequest(BaseModel):
    story_id: uuid.UUID = Field(..., alias="storyId")
    target_languages: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TARGET_LANGUAGES),
        alias="targetLanguages",
        min_length=1,
        max_length=14,
    )

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class RenditionOut(SuggestionOut):
    """A rendition from /process-story; placeholders are not stored and have no id."""
    id: Optional[uuid.UUID] = None


class ProcessStoryResponse(BaseModel):
    success: bool = True
    story: StoryOut
    classification: ClassificationOut
    similar_stories_count: int = Field(..., alias="similarStoriesCount")
    suggestions: List[RenditionOut]

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------

class FeedItem(SuggestionOut):
    reaction_count: int = 0
    comment_count: int = 0
    user_reaction: Optional[str] = None


class FeedResponse(BaseModel):
    success: bool = True
    suggestions: List[FeedItem]
    page: int
    limit: int
    has_more: bool = Field(..., alias="hasMore")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------
# Social
# ---------------------------------------------------------------------

class ReactRequest(BaseModel):
    suggested_id: uuid.UUID = Field(..., alias="suggestedId")
    type: str = Field(..., min_length=1, max_length=32)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ReactResponse(BaseModel):
    success: bool = True
    action: Literal["added", "removed"]


class CommentRequest(BaseModel):
    suggested_id: uuid.UUID = Field(..., alias="suggestedId")
    text: str = Field(..., min_length=1, max_length=5000)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class CommentResponse(BaseModel):
    success: bool = True
    comment: CommentOut


class CommentListResponse(BaseModel):
    success: bool = True
    comments: List[CommentOut]


class ReportRequest(BaseModel):
    suggested_id: uuid.UUID = Field(..., alias="suggestedId")
    reason: str = Field(..., min_length=1, max_length=2000)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ReportResponse(BaseModel):
    success: bool = True
    report: ReportOut
    message: str = "Report submitted successfully"


class FollowRequest(BaseModel):
    followed_id: uuid.UUID = Field(..., alias="followedId")
    action: Literal["follow", "unfollow"] = "follow"

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class FollowResponse(BaseModel):
    success: bool = True
    action: Literal["follow", "unfollow"]


class ProfileDetail(ProfileOut):
    follower_count: int = 0
    following_count: int = 0
    is_following: bool = False


class ProfileResponse(BaseModel):
    success: bool = True
    profile: ProfileDetail


class MeResponse(BaseModel):
    success: bool = True
    user_id: uuid.UUID = Field(..., alias="userId")
    profile: Optional[ProfileOut] = None
    stories_sent: int = Field(..., alias="storiesSent")
    stories_received: int = Field(..., alias="storiesReceived")
    unread: int

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------

class ReceivedItem(BaseModel):
    id: uuid.UUID
    submission_id: uuid.UUID
    source_story_id: uuid.UUID
    suggested_story_id: uuid.UUID
    is_read: bool
    created_at: Optional[datetime] = None
    suggestion: SuggestionOut


class ReceivedListResponse(BaseModel):
    success: bool = True
    stories: List[ReceivedItem]
    unread: int


class MarkReadResponse(BaseModel):
    success: bool = True
    updated: int


# ---------------------------------------------------------------------
# Transcription
# ---------------------------------------------------------------------

class TranscriptionResponse(BaseModel):
    success: bool = True
    text: str
