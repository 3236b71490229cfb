"""
Feed Route

``GET /feed`` pages through suggested stories newest first. Suggestions are
read in the base feed language and translated on the fly when another
language is requested; a failed translation leaves the text untranslated.
Authenticated callers also see their own reaction on each item.
"""

import asyncio
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from .models import FeedItem, FeedResponse
from .dependencies import get_rewriter, get_social_store
from ..auth.models import UserContext
from ..auth.security import get_optional_user
from ..config import settings
from ..db.social_store import SocialStore
from ..llm.rewrite import Rewriter

router = APIRouter(tags=["feed"])


@router.get("/feed", response_model=FeedResponse)
async def get_feed(
    social: Annotated[SocialStore, Depends(get_social_store)],
    rewriter: Annotated[Rewriter, Depends(get_rewriter)],
    user: Annotated[Optional[UserContext], Depends(get_optional_user)],
    lang: str = Query("en", min_length=2, max_length=16),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
):
    base_language = settings.feed_base_language
    offset = (page - 1) * limit

    rows = await social.feed(base_language, offset=offset, limit=limit)

    user_reactions = {}
    if user is not None and rows:
        user_reactions = await social.reactions_by_user(
            user.user_id,
            [suggestion.id for suggestion, _, _ in rows],
        )

    if lang.lower() != base_language.lower():
        texts = await asyncio.gather(*(
            rewriter.translate(suggestion.rewritten_text, lang, base_language)
            for suggestion, _, _ in rows
        ))
    else:
        texts = [suggestion.rewritten_text for suggestion, _, _ in rows]

    items = []
    for (suggestion, reaction_count, comment_count), text in zip(rows, texts):
        item = FeedItem.model_validate(suggestion)
        items.append(item.model_copy(update={
            "rewritten_text": text,
            "reaction_count": reaction_count,
            "comment_count": comment_count,
            "user_reaction": user_reactions.get(suggestion.id),
        }))

    return FeedResponse(
        suggestions=items,
        page=page,
        limit=limit,
        has_more=len(rows) == limit,
    )
