"""
Social Routes

Reactions, comments, reports and follows on suggested stories. Comments go
through the comment moderation policy before they are stored.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from .models import (
    CommentAuthor,
    CommentListResponse,
    CommentOut,
    CommentRequest,
    CommentResponse,
    FollowRequest,
    FollowResponse,
    ReactRequest,
    ReactResponse,
    RejectionResponse,
    ReportOut,
    ReportRequest,
    ReportResponse,
)
from .dependencies import get_moderator, get_social_store
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..db.social_store import SocialStore
from ..llm.moderation import Moderator

logger = logging.getLogger("stories.social")

router = APIRouter(tags=["social"])


async def _require_suggestion(social: SocialStore, suggested_id: uuid.UUID) -> None:
    if not await social.suggestion_exists(suggested_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Suggested story not found",
        )


# ---------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------

@router.post("/react", response_model=ReactResponse)
async def react(
    req: ReactRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    social: Annotated[SocialStore, Depends(get_social_store)],
):
    await _require_suggestion(social, req.suggested_id)
    action = await social.toggle_reaction(user.user_id, req.suggested_id, req.type)
    await social.commit()
    return ReactResponse(action=action)


# ---------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------

@router.get("/comment", response_model=CommentListResponse)
async def list_comments(
    social: Annotated[SocialStore, Depends(get_social_store)],
    suggested_id: uuid.UUID = Query(..., alias="suggestedId"),
):
    rows = await social.list_comments(suggested_id)
    comments = []
    for comment, display_name, avatar_url in rows:
        out = CommentOut.model_validate(comment)
        out.profiles = CommentAuthor(display_name=display_name, avatar_url=avatar_url)
        comments.append(out)
    return CommentListResponse(comments=comments)


@router.post(
    "/comment",
    response_model=CommentResponse,
    responses={400: {"model": RejectionResponse}},
)
async def add_comment(
    req: CommentRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    social: Annotated[SocialStore, Depends(get_social_store)],
    moderator: Annotated[Moderator, Depends(get_moderator)],
):
    await _require_suggestion(social, req.suggested_id)

    verdict = await moderator.moderate(req.text, kind="comment")
    if not verdict.approved:
        body = RejectionResponse(
            error="Comment rejected by moderation",
            reason=verdict.reason,
            severity=verdict.severity,
        )
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())

    comment = await social.add_comment(user.user_id, req.suggested_id, req.text)
    profile = await social.get_profile(user.user_id)
    await social.commit()

    out = CommentOut.model_validate(comment)
    if profile is not None:
        out.profiles = CommentAuthor(
            display_name=profile.display_name,
            avatar_url=profile.avatar_url,
        )
    return CommentResponse(comment=out)


# ---------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------

@router.post("/report", response_model=ReportResponse)
async def report(
    req: ReportRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    social: Annotated[SocialStore, Depends(get_social_store)],
):
    await _require_suggestion(social, req.suggested_id)
    created = await social.add_report(user.user_id, req.suggested_id, req.reason)
    await social.commit()
    logger.info("Suggestion %s reported by %s", req.suggested_id, user.user_id)
    return ReportResponse(report=ReportOut.model_validate(created))


# ---------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------

@router.post("/follow", response_model=FollowResponse)
async def follow(
    req: FollowRequest,
    user: Annotated[UserContext, Depends(get_current_user)],
    social: Annotated[SocialStore, Depends(get_social_store)],
):
    if req.followed_id == user.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot follow yourself",
        )

    if req.action == "follow":
        await social.follow(user.user_id, req.followed_id)
    else:
        await social.unfollow(user.user_id, req.followed_id)
    await social.commit()

    return FollowResponse(action=req.action)
