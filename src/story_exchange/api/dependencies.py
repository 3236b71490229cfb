from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import MatchingConfig, settings
from ..db import (
    DeliveryLedger,
    SocialStore,
    StoryStore,
    get_async_session,
    get_service_session,
)
from ..embeddings.embedder import EmbeddingProvider, build_embedder
from ..llm.classifier import Classifier
from ..llm.client import LLMClient
from ..llm.fallback import FallbackGenerator
from ..llm.moderation import Moderator
from ..llm.rewrite import Rewriter
from ..matching.pipeline import DeliveryPipeline
from ..speech.transcriber import Transcriber


# ---------------------------------------------------------------------
# Providers (constructed once per process)
# ---------------------------------------------------------------------

def get_matching_config() -> MatchingConfig:
    return settings.matching


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return build_embedder(settings)


@lru_cache
def get_moderator() -> Moderator:
    return Moderator(get_llm_client())


@lru_cache
def get_classifier() -> Classifier:
    return Classifier(get_llm_client(), settings.matching)


@lru_cache
def get_rewriter() -> Rewriter:
    return Rewriter(get_llm_client(), settings.matching)


@lru_cache
def get_fallback_generator() -> FallbackGenerator:
    return FallbackGenerator(get_llm_client())


@lru_cache
def get_transcriber() -> Transcriber:
    return Transcriber()


# ---------------------------------------------------------------------
# Stores (one per request)
# ---------------------------------------------------------------------

def get_story_store(
    session: Annotated[AsyncSession, Depends(get_service_session)],
) -> StoryStore:
    return StoryStore(session)


def get_user_story_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> StoryStore:
    """Story reads scoped to the end-user tier."""
    return StoryStore(session)


def get_delivery_ledger(
    session: Annotated[AsyncSession, Depends(get_service_session)],
) -> DeliveryLedger:
    return DeliveryLedger(session)


def get_inbox(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> DeliveryLedger:
    """Ledger bound to the end-user tier, for the caller's own deliveries."""
    return DeliveryLedger(session)


def get_social_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> SocialStore:
    return SocialStore(session)


def get_pipeline(
    stories: Annotated[StoryStore, Depends(get_story_store)],
    ledger: Annotated[DeliveryLedger, Depends(get_delivery_ledger)],
    classifier: Annotated[Classifier, Depends(get_classifier)],
    embedder: Annotated[EmbeddingProvider, Depends(get_embedder)],
    rewriter: Annotated[Rewriter, Depends(get_rewriter)],
    fallback: Annotated[FallbackGenerator, Depends(get_fallback_generator)],
    config: Annotated[MatchingConfig, Depends(get_matching_config)],
) -> DeliveryPipeline:
    return DeliveryPipeline(
        stories=stories,
        ledger=ledger,
        classifier=classifier,
        embedder=embedder,
        rewriter=rewriter,
        fallback=fallback,
        config=config,
        feed_language=settings.feed_base_language,
    )
