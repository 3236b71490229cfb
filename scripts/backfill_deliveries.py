"""
Re-run the delivery pipeline for approved stories whose submitter never
received a story (submissions that ended in DELIVERY_FAILED).

Safe to run repeatedly: the ledger keeps at most one delivery per
submission.

Usage:
    python scripts/backfill_deliveries.py [--limit N]
"""

import argparse
import asyncio
import logging
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from story_exchange.config import settings
from story_exchange.db import DeliveryLedger, ServiceSessionLocal, StoryStore
from story_exchange.db.session import dispose_engines
from story_exchange.embeddings.embedder import build_embedder
from story_exchange.llm.classifier import Classifier
from story_exchange.llm.client import LLMClient
from story_exchange.llm.fallback import FallbackGenerator
from story_exchange.llm.rewrite import Rewriter
from story_exchange.matching.pipeline import DeliveryPipeline, DeliveryState

logger = logging.getLogger("stories.backfill")


async def _backfill_story(story_id, providers) -> DeliveryState:
    """
    Run the pipeline for one story inside a dedicated DB session.
    """
    async with ServiceSessionLocal() as session:
        stories = StoryStore(session)
        pipeline = DeliveryPipeline(
            stories=stories,
            ledger=DeliveryLedger(session),
            config=settings.matching,
            feed_language=settings.feed_base_language,
            **providers,
        )

        story = await stories.get_story(story_id)
        if story is None:
            return DeliveryState.DELIVERY_FAILED

        try:
            outcome = await pipeline.run(story)
            await stories.commit()
        except Exception:
            await session.rollback()
            raise

        return outcome.state


async def main(limit: int) -> int:
    llm = LLMClient()
    providers = {
        "classifier": Classifier(llm, settings.matching),
        "embedder": build_embedder(settings),
        "rewriter": Rewriter(llm, settings.matching),
        "fallback": FallbackGenerator(llm),
    }

    async with ServiceSessionLocal() as session:
        pending = await StoryStore(session).list_undelivered(limit=limit)
        story_ids = [story.id for story in pending]

    logger.info("Found %d approved stories without a delivery", len(story_ids))

    failures = 0
    for i, story_id in enumerate(story_ids):
        try:
            state = await _backfill_story(story_id, providers)
        except Exception:
            logger.exception("Backfill failed for story %s", story_id)
            failures += 1
            continue

        logger.info("(%d/%d) story %s -> %s", i + 1, len(story_ids), story_id, state.value)
        if state is DeliveryState.DELIVERY_FAILED:
            failures += 1

    await dispose_engines()
    logger.info("Backfill finished: %d processed, %d failed", len(story_ids), failures)
    return 1 if failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Retry deliveries for undelivered stories.")
    parser.add_argument("--limit", type=int, default=100, help="Maximum stories to process")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(main(args.limit)))
