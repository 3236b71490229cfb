"""
Moderation Routes

- ``GET /moderate`` and ``POST /moderate`` are the moderator queue. Both
  require the admin key (see `verify_admin`).
- ``POST /moderate-comment`` runs the comment policy on arbitrary text. It
  always answers 200; an unavailable provider yields a rejection verdict.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .models import (
    CommentModerationRequest,
    ModerateRequest,
    ModerateResponse,
    ModerationQueueResponse,
    ModerationResult,
    StoryOut,
)
from .dependencies import get_moderator, get_story_store
from ..auth.security import verify_admin
from ..db.models import STORY_STATUSES
from ..db.story_store import StoryStatusConflict, StoryStore
from ..llm.moderation import Moderator

logger = logging.getLogger("stories.admin")

router = APIRouter(tags=["moderation"])

_ACTION_STATUS = {"approve": "approved", "reject": "rejected"}
_STATUS_PATTERN = "^(" + "|".join(STORY_STATUSES) + ")$"


@router.get(
    "/moderate",
    response_model=ModerationQueueResponse,
    dependencies=[Depends(verify_admin)],
)
async def list_stories(
    stories: Annotated[StoryStore, Depends(get_story_store)],
    status_filter: str = Query("pending", alias="status", pattern=_STATUS_PATTERN),
    limit: int = Query(50, ge=1, le=200),
):
    rows = await stories.list_by_status(status_filter, limit=limit)
    return ModerationQueueResponse(
        stories=[StoryOut.model_validate(s) for s in rows],
        count=len(rows),
    )


@router.post(
    "/moderate",
    response_model=ModerateResponse,
    dependencies=[Depends(verify_admin)],
)
async def moderate_story(
    req: ModerateRequest,
    stories: Annotated[StoryStore, Depends(get_story_store)],
):
    new_status = _ACTION_STATUS[req.action]

    try:
        story = await stories.set_status_once(req.story_id, new_status)
    except LookupError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Story not found")
    except StoryStatusConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    await stories.commit()
    logger.info("Story %s %s by moderator", story.id, new_status)

    return ModerateResponse(
        story=StoryOut.model_validate(story),
        message=f"Story {new_status} successfully",
    )


@router.post("/moderate-comment", response_model=ModerationResult)
async def moderate_comment(
    req: CommentModerationRequest,
    moderator: Annotated[Moderator, Depends(get_moderator)],
):
    verdict = await moderator.moderate(req.text, kind="comment")
    return ModerationResult(
        approved=verdict.approved,
        reason=verdict.reason,
        severity=verdict.severity,
    )
