"""
Story Processing Route (moderator only)

``POST /process-story`` re-analyzes an approved story and makes sure it has a
``matched`` rendition in each requested language, so it is ready to be
delivered or shown in the feed. Existing renditions are reused; renditions
that cannot be produced carry the placeholder text, have no id and are not
stored.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from .models import (
    ClassificationOut,
    ProcessStoryRequest,
    ProcessStoryResponse,
    RenditionOut,
    StoryOut,
)
from .dependencies import get_pipeline, get_story_store
from ..auth.security import verify_admin
from ..db.story_store import StoryStore
from ..matching.pipeline import DeliveryPipeline

logger = logging.getLogger("stories.admin")

router = APIRouter(tags=["processing"])


@router.post(
    "/process-story",
    response_model=ProcessStoryResponse,
    dependencies=[Depends(verify_admin)],
)
async def process_story(
    req: ProcessStoryRequest,
    stories: Annotated[StoryStore, Depends(get_story_store)],
    pipeline: Annotated[DeliveryPipeline, Depends(get_pipeline)],
):
    story = await stories.get_story(req.story_id)
    if story is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Story not found")

    if story.status != "approved":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Only approved stories can be processed (status: {story.status})",
        )

    # Preserve order, drop duplicates
    languages = list(dict.fromkeys(lang.strip() for lang in req.target_languages if lang.strip()))

    result = await pipeline.prepare_renditions(story, languages)
    await stories.commit()

    logger.info(
        "Processed story %s: %d renditions, %d similar stories",
        story.id,
        len(result.suggestions),
        result.similar_count,
    )

    return ProcessStoryResponse(
        story=StoryOut.model_validate(story),
        classification=ClassificationOut.model_validate(result.classification),
        similar_stories_count=result.similar_count,
        suggestions=[RenditionOut.model_validate(s) for s in result.suggestions],
    )
