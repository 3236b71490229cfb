"""
Database Package

Provides SQLAlchemy async session management, model definitions for
PostgreSQL with pgvector, and the stores built on them.
"""

from .session import (
    get_async_session,
    get_service_session,
    async_engine,
    service_engine,
    AsyncSessionLocal,
    ServiceSessionLocal,
)
from .models import (
    Base,
    Story,
    StoryEmbedding,
    SuggestedStory,
    UserReceivedStory,
    Profile,
    Follow,
    Reaction,
    Comment,
    Report,
)
from .story_store import StoryStore, StoryStatusConflict
from .delivery_ledger import DeliveryLedger
from .social_store import SocialStore

__all__ = [
    "get_async_session",
    "get_service_session",
    "async_engine",
    "service_engine",
    "AsyncSessionLocal",
    "ServiceSessionLocal",
    "Base",
    "Story",
    "StoryEmbedding",
    "SuggestedStory",
    "UserReceivedStory",
    "Profile",
    "Follow",
    "Reaction",
    "Comment",
    "Report",
    "StoryStore",
    "StoryStatusConflict",
    "DeliveryLedger",
    "SocialStore",
]
