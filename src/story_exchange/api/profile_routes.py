import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from .models import MeResponse, ProfileDetail, ProfileOut, ProfileResponse
from .dependencies import get_inbox, get_social_store, get_user_story_store
from ..auth.models import UserContext
from ..auth.security import get_current_user, get_optional_user
from ..db.delivery_ledger import DeliveryLedger
from ..db.social_store import SocialStore
from ..db.story_store import StoryStore

router = APIRouter(tags=["profile"])


@router.get("/profile/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: uuid.UUID,
    social: Annotated[SocialStore, Depends(get_social_store)],
    viewer: Annotated[Optional[UserContext], Depends(get_optional_user)],
):
    """
    Public profile with follower counts, and whether the caller follows it.
    """
    profile = await social.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")

    followers, following = await social.follow_counts(user_id)

    is_following = False
    if viewer is not None and viewer.user_id != user_id:
        is_following = await social.is_following(viewer.user_id, user_id)

    detail = ProfileDetail.model_validate(profile).model_copy(update={
        "follower_count": followers,
        "following_count": following,
        "is_following": is_following,
    })
    return ProfileResponse(profile=detail)


@router.get("/me", response_model=MeResponse)
async def get_me(
    user: Annotated[UserContext, Depends(get_current_user)],
    social: Annotated[SocialStore, Depends(get_social_store)],
    stories: Annotated[StoryStore, Depends(get_user_story_store)],
    inbox: Annotated[DeliveryLedger, Depends(get_inbox)],
):
    profile = await social.get_profile(user.user_id)
    sent = await stories.count_approved_by_user(user.user_id)
    received, unread = await inbox.count_received(user.user_id)

    return MeResponse(
        user_id=user.user_id,
        profile=ProfileOut.model_validate(profile) if profile is not None else None,
        stories_sent=sent,
        stories_received=received,
        unread=unread,
    )
