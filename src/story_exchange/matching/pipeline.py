"""
Delivery Pipeline

Takes an approved, committed story and resolves exactly one delivery for
its submitter:

    CLASSIFIED+EMBEDDED -> MATCH_SEARCH -> MATCHED_AND_DELIVERED
                                         | FALLBACK_AND_DELIVERED
                                         | DELIVERY_FAILED

Failure Policy
--------------
- Classification and embedding are soft. The classifier substitutes its
  default; a missing embedding skips the match search and goes straight to
  the fallback generator.
- The embedding upsert runs in a SAVEPOINT; database errors there are logged
  and the pipeline continues.
- A match whose rendition cannot be produced falls through to the fallback
  generator.
- A fallback generation failure ends the attempt with ``DELIVERY_FAILED``.
  The story stays persisted, and the backfill job can retry it later.
- A database error anywhere in delivery rolls back the delivery writes and
  also ends with ``DELIVERY_FAILED``; the committed story is kept.
- A story submitted in another language than the feed also gets a
  rendition of what it received in the feed language, best effort.

Re-running the pipeline for a story that already has a delivery returns the
existing delivery and writes nothing.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from .similarity import RankedMatch, rank, select_match
from ..config import MatchingConfig
from ..db.delivery_ledger import DeliveryLedger
from ..db.models import (
    GENERATION_FALLBACK,
    GENERATION_MATCHED,
    Story,
    SuggestedStory,
    UserReceivedStory,
)
from ..db.story_store import StoryStore
from ..embeddings.embedder import EmbeddingError, EmbeddingProvider
from ..llm.classifier import Classification, Classifier
from ..llm.fallback import FallbackGenerationError, FallbackGenerator
from ..llm.rewrite import PLACEHOLDER_TEXT, RewriteError, Rewriter

logger = logging.getLogger("stories.pipeline")


class DeliveryState(str, Enum):
    MATCHED_AND_DELIVERED = "MATCHED_AND_DELIVERED"
    FALLBACK_AND_DELIVERED = "FALLBACK_AND_DELIVERED"
    DELIVERY_FAILED = "DELIVERY_FAILED"


@dataclass
class StoryAnalysis:
    classification: Classification
    embedding: Optional[List[float]] = None


@dataclass
class PipelineOutcome:
    state: DeliveryState
    classification: Classification
    received_story_id: Optional[uuid.UUID] = None
    suggested_story_id: Optional[uuid.UUID] = None
    match: Optional[RankedMatch] = None


@dataclass
class ProcessingResult:
    """Result of preparing a story's renditions (admin reprocessing)."""
    classification: Classification
    similar_count: int
    suggestions: List[SuggestedStory] = field(default_factory=list)


class DeliveryPipeline:
    def __init__(
        self,
        stories: StoryStore,
        ledger: DeliveryLedger,
        classifier: Classifier,
        embedder: EmbeddingProvider,
        rewriter: Rewriter,
        fallback: FallbackGenerator,
        config: MatchingConfig,
        feed_language: str = "en",
    ) -> None:
        self._stories = stories
        self._ledger = ledger
        self._classifier = classifier
        self._embedder = embedder
        self._rewriter = rewriter
        self._fallback = fallback
        self._config = config
        self._feed_language = feed_language

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze(self, text: str) -> StoryAnalysis:
        """
        Classify and embed ``text`` concurrently.

        Never raises for provider failures: classification falls back to the
        default and the embedding is None when it could not be produced.
        """
        classification, embedding = await asyncio.gather(
            self._classifier.classify(text),
            self._embed(text),
        )
        return StoryAnalysis(classification=classification, embedding=embedding)

    async def _embed(self, text: str) -> Optional[List[float]]:
        try:
            vectors = await self._embedder.embed([text])
        except EmbeddingError as exc:
            logger.warning("Embedding failed, continuing without a vector: %s", exc)
            return None
        if not vectors or not vectors[0]:
            logger.warning("Embedding provider returned no vector")
            return None
        return vectors[0]

    async def _store_analysis(self, story: Story, analysis: StoryAnalysis) -> None:
        if analysis.embedding is None:
            return
        try:
            await self._stories.upsert_embedding(
                story.id,
                analysis.embedding,
                embedding_model=self._embedder.model_name,
                archetype=analysis.classification.archetype,
                emotion_tone=analysis.classification.emotion_tone,
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to store embedding for story %s: %s", story.id, exc)

    async def rank_candidates(
        self,
        story: Story,
        analysis: StoryAnalysis,
    ) -> List[RankedMatch]:
        """
        Rank other users' approved stories against ``story``, best first.
        """
        if analysis.embedding is None:
            return []

        candidates = await self._stories.list_candidates(
            embedding_model=self._embedder.model_name,
            exclude_story_id=story.id,
            exclude_user_id=story.user_id,
        )
        return rank(
            analysis.embedding,
            candidates,
            analysis.classification.archetype,
            analysis.classification.emotion_tone,
            self._config,
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def run(
        self,
        story: Story,
        analysis: Optional[StoryAnalysis] = None,
    ) -> PipelineOutcome:
        """
        Resolve the delivery for a submitted story.

        Parameters
        ----------
        story : Story
            The approved story, already committed.
        analysis : Optional[StoryAnalysis]
            Precomputed classification and embedding; computed when omitted.

        Returns
        -------
        PipelineOutcome
            The terminal delivery state and the ids of what was delivered.
        """
        try:
            existing = await self._ledger.get_delivery_for_submission(story.user_id, story.id)
            if existing is not None:
                logger.info("Story %s already has delivery %s", story.id, existing.id)
                return await self._existing_outcome(existing, analysis)

            if analysis is None:
                analysis = await self.analyze(story.text)

            return await self._resolve(story, analysis)
        except SQLAlchemyError as exc:
            logger.error("Delivery for story %s aborted by a database error: %s", story.id, exc)
            await self._ledger.rollback()
            classification = (
                analysis.classification if analysis is not None else self._classifier.default
            )
            return PipelineOutcome(
                state=DeliveryState.DELIVERY_FAILED,
                classification=classification,
            )

    async def _resolve(self, story: Story, analysis: StoryAnalysis) -> PipelineOutcome:
        await self._store_analysis(story, analysis)

        ranked = await self.rank_candidates(story, analysis)
        match = select_match(ranked, self._config)

        if match is not None:
            logger.info(
                "Story %s matched %s (score=%.3f, base=%.3f)",
                story.id,
                match.story_id,
                match.score,
                match.base_score,
            )
            try:
                suggestion = await self._matched_rendition(match, story)
            except RewriteError as exc:
                logger.warning(
                    "Rendition of matched story %s failed, falling back: %s",
                    match.story_id,
                    exc,
                )
            else:
                delivery, _ = await self._ledger.record_delivery(
                    user_id=story.user_id,
                    submission_id=story.id,
                    source_story_id=suggestion.source_story_id,
                    suggested_story_id=suggestion.id,
                )
                await self._seed_matched_feed(story, match)
                return PipelineOutcome(
                    state=DeliveryState.MATCHED_AND_DELIVERED,
                    classification=analysis.classification,
                    received_story_id=delivery.id,
                    suggested_story_id=delivery.suggested_story_id,
                    match=match,
                )
        else:
            logger.info("No match above threshold for story %s (%d candidates)", story.id, len(ranked))

        return await self._deliver_fallback(story, analysis, match)

    async def _matched_rendition(self, match: RankedMatch, story: Story) -> SuggestedStory:
        """
        Reuse the rendition of the matched story in the submitter's language,
        or create one.
        """
        existing = await self._ledger.find_rendition(match.story_id, story.language)
        if existing is not None:
            return existing

        text = await self._rewriter.render(
            match.candidate.text,
            story.language,
            source_language=match.candidate.language or "auto",
        )
        return await self._ledger.create_suggestion(
            source_story_id=match.story_id,
            similar_story_id=story.id,
            target_language=story.language,
            rewritten_text=text,
            generation_type=GENERATION_MATCHED,
            similarity=match.score,
            model_versions=self._provenance(GENERATION_MATCHED, match.score),
        )

    async def _deliver_fallback(
        self,
        story: Story,
        analysis: StoryAnalysis,
        match: Optional[RankedMatch],
    ) -> PipelineOutcome:
        try:
            text = await self._fallback.generate(story.text, story.language)
        except FallbackGenerationError as exc:
            logger.error("Fallback generation failed for story %s: %s", story.id, exc)
            return PipelineOutcome(
                state=DeliveryState.DELIVERY_FAILED,
                classification=analysis.classification,
                match=match,
            )

        suggestion = await self._ledger.create_suggestion(
            source_story_id=story.id,
            target_language=story.language,
            rewritten_text=text,
            generation_type=GENERATION_FALLBACK,
            model_versions=self._provenance(GENERATION_FALLBACK, None),
        )
        delivery, _ = await self._ledger.record_delivery(
            user_id=story.user_id,
            submission_id=story.id,
            source_story_id=story.id,
            suggested_story_id=suggestion.id,
        )
        await self._seed_fallback_feed(story, text)
        return PipelineOutcome(
            state=DeliveryState.FALLBACK_AND_DELIVERED,
            classification=analysis.classification,
            received_story_id=delivery.id,
            suggested_story_id=delivery.suggested_story_id,
            match=match,
        )

    # ------------------------------------------------------------------
    # Feed renditions
    # ------------------------------------------------------------------

    def _in_feed_language(self, language: str) -> bool:
        return language.lower() == self._feed_language.lower()

    async def _seed_matched_feed(self, story: Story, match: RankedMatch) -> None:
        """
        Make sure the delivered story also has a rendition in the feed
        language. Best effort: the delivery is already recorded.
        """
        if self._in_feed_language(story.language):
            return

        try:
            if await self._ledger.find_rendition(match.story_id, self._feed_language) is not None:
                return
            text = await self._rewriter.render(
                match.candidate.text,
                self._feed_language,
                source_language=match.candidate.language or "auto",
            )
            await self._ledger.create_suggestion_in_savepoint(
                source_story_id=match.story_id,
                similar_story_id=story.id,
                target_language=self._feed_language,
                rewritten_text=text,
                generation_type=GENERATION_MATCHED,
                similarity=match.score,
                model_versions=self._provenance(GENERATION_MATCHED, match.score),
            )
        except (RewriteError, SQLAlchemyError) as exc:
            logger.warning("No feed rendition for story %s: %s", match.story_id, exc)

    async def _seed_fallback_feed(self, story: Story, text: str) -> None:
        if self._in_feed_language(story.language):
            return

        translated = await self._rewriter.translate(text, self._feed_language, story.language)
        if translated == text:
            logger.warning("Fallback for story %s left out of the feed: not translated", story.id)
            return

        try:
            await self._ledger.create_suggestion_in_savepoint(
                source_story_id=story.id,
                target_language=self._feed_language,
                rewritten_text=translated,
                generation_type=GENERATION_FALLBACK,
                model_versions=self._provenance(GENERATION_FALLBACK, None),
            )
        except SQLAlchemyError as exc:
            logger.warning("No feed rendition for fallback of story %s: %s", story.id, exc)

    async def _existing_outcome(
        self,
        delivery: UserReceivedStory,
        analysis: Optional[StoryAnalysis],
    ) -> PipelineOutcome:
        suggestion = await self._ledger.get_suggestion(delivery.suggested_story_id)
        if suggestion is not None and suggestion.generation_type == GENERATION_MATCHED:
            state = DeliveryState.MATCHED_AND_DELIVERED
        else:
            state = DeliveryState.FALLBACK_AND_DELIVERED

        classification = analysis.classification if analysis else self._classifier.default
        return PipelineOutcome(
            state=state,
            classification=classification,
            received_story_id=delivery.id,
            suggested_story_id=delivery.suggested_story_id,
        )

    # ------------------------------------------------------------------
    # Admin reprocessing
    # ------------------------------------------------------------------

    async def prepare_renditions(
        self,
        story: Story,
        target_languages: Sequence[str],
    ) -> ProcessingResult:
        """
        Re-analyze a story and make sure it has a ``matched`` rendition in
        every target language, so it can be delivered without waiting on
        the rewrite provider. Renditions that cannot be produced come back
        with the placeholder text and are not stored.
        """
        analysis = await self.analyze(story.text)
        await self._store_analysis(story, analysis)

        ranked = await self.rank_candidates(story, analysis)
        similar_count = sum(1 for m in ranked if m.score > self._config.similarity_threshold)

        suggestions: List[SuggestedStory] = []
        rendered: Dict[str, SuggestedStory] = {}
        for language in target_languages:
            if language in rendered:
                continue

            suggestion = await self._ledger.find_rendition(story.id, language)
            if suggestion is None:
                text = await self._rewriter.render_or_placeholder(
                    story.text,
                    language,
                    source_language=story.language,
                )
                fields = dict(
                    source_story_id=story.id,
                    target_language=language,
                    rewritten_text=text,
                    generation_type=GENERATION_MATCHED,
                    model_versions=self._provenance(GENERATION_MATCHED, None),
                )
                if text == PLACEHOLDER_TEXT:
                    # Returned to the caller but never stored, so a later
                    # delivery renders this language again
                    suggestion = SuggestedStory(**fields)
                else:
                    suggestion = await self._ledger.create_suggestion(**fields)

            rendered[language] = suggestion
            suggestions.append(suggestion)

        return ProcessingResult(
            classification=analysis.classification,
            similar_count=similar_count,
            suggestions=suggestions,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _provenance(self, generation_type: str, similarity: Optional[float]) -> dict:
        llm_model = (
            self._fallback.model_name
            if generation_type == GENERATION_FALLBACK
            else self._rewriter.model_name
        )
        return {
            "llm": llm_model,
            "embedding": self._embedder.model_name,
            "similarity": similarity,
            "type": generation_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
