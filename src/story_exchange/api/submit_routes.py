"""
Submission Routes

``POST /submit`` runs a story through the moderation gate, persists it, and
resolves a delivery for the submitter through the matching pipeline.

Response Semantics
------------------
- 400 with ``{success: false, ...}`` when consent is missing or moderation
  rejects the text. Nothing is persisted in either case.
- 200 with ``success: true`` once the story is persisted, whatever the
  delivery outcome. ``receivedStoryId`` is null and ``deliveryState`` is
  ``DELIVERY_FAILED`` when no delivery could be made.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .models import (
    ClassificationOut,
    RejectionResponse,
    StoryOut,
    SubmitRequest,
    SubmitResponse,
)
from .dependencies import get_matching_config, get_moderator, get_pipeline, get_story_store
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..config import MatchingConfig
from ..db.story_store import StoryStore
from ..llm.classifier import Classification
from ..llm.moderation import Moderator
from ..matching.pipeline import DeliveryPipeline, DeliveryState, PipelineOutcome

logger = logging.getLogger("stories.submit")

router = APIRouter(tags=["submit"])


def _rejection(error: str, reason=None, severity=None) -> JSONResponse:
    body = RejectionResponse(error=error, reason=reason, severity=severity)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


@router.post(
    "/submit",
    response_model=SubmitResponse,
    responses={400: {"model": RejectionResponse}},
)
async def submit_story(
    req: SubmitRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    moderator: Annotated[Moderator, Depends(get_moderator)],
    stories: Annotated[StoryStore, Depends(get_story_store)],
    pipeline: Annotated[DeliveryPipeline, Depends(get_pipeline)],
    config: Annotated[MatchingConfig, Depends(get_matching_config)],
):
    if not req.consent:
        return _rejection("Consent is required to share a story.")

    verdict = await moderator.moderate(req.text, kind="story")
    if not verdict.approved:
        logger.info("Submission from %s rejected by moderation", user.user_id)
        return _rejection(
            "Story rejected by moderation",
            reason=verdict.reason,
            severity=verdict.severity,
        )

    story = await stories.create_story(
        user_id=user.user_id,
        text=req.text,
        language=req.language,
        consent=True,
        status="approved",
    )
    # The story must survive any failure further down the pipeline
    await stories.commit()
    logger.info("Story %s stored for user %s", story.id, user.user_id)

    try:
        outcome = await pipeline.run(story)
        await stories.commit()
    except SQLAlchemyError as exc:
        # The story is already committed; only the delivery is lost
        logger.error("Delivery for story %s failed on the database: %s", story.id, exc)
        await stories.rollback()
        outcome = PipelineOutcome(
            state=DeliveryState.DELIVERY_FAILED,
            classification=Classification(
                archetype=config.default_archetype,
                emotion_tone=config.default_emotion_tone,
            ),
        )

    logger.info("Story %s delivery state: %s", story.id, outcome.state.value)

    return SubmitResponse(
        story=StoryOut.model_validate(story),
        received_story_id=outcome.received_story_id,
        classification=ClassificationOut.model_validate(outcome.classification),
        delivery_state=outcome.state.value,
    )
