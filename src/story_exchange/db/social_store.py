"""
Social Store

Reactions, comments, reports, follows, profiles and the public feed.
"""

from __future__ import annotations

import uuid
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert as pg_insert

from .models import (
    Comment,
    Follow,
    Profile,
    Reaction,
    Report,
    SuggestedStory,
)


class SocialStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    async def suggestion_exists(self, suggested_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            select(SuggestedStory.id).where(SuggestedStory.id == suggested_id)
        )
        return result.scalar_one_or_none() is not None

    # ------------------------------------------------------------------
    # Reactions
    # ------------------------------------------------------------------

    async def toggle_reaction(
        self,
        user_id: uuid.UUID,
        suggested_id: uuid.UUID,
        reaction_type: str,
    ) -> str:
        """
        Add the reaction if absent, remove it if present.

        Returns
        -------
        str
            ``"added"`` or ``"removed"``.
        """
        result = await self._session.execute(
            delete(Reaction)
            .where(
                Reaction.suggested_id == suggested_id,
                Reaction.user_id == user_id,
                Reaction.type == reaction_type,
            )
            .returning(Reaction.id)
        )
        if result.first() is not None:
            return "removed"

        await self._session.execute(
            pg_insert(Reaction)
            .values(
                id=uuid.uuid4(),
                suggested_id=suggested_id,
                user_id=user_id,
                type=reaction_type,
            )
            .on_conflict_do_nothing(constraint="uq_reaction_toggle")
        )
        return "added"

    # ------------------------------------------------------------------
    # Comments & Reports
    # ------------------------------------------------------------------

    async def add_comment(
        self,
        user_id: uuid.UUID,
        suggested_id: uuid.UUID,
        text: str,
    ) -> Comment:
        comment = Comment(suggested_id=suggested_id, user_id=user_id, text=text)
        self._session.add(comment)
        await self._session.flush()
        return comment

    async def list_comments(
        self,
        suggested_id: uuid.UUID,
    ) -> List[Tuple[Comment, Optional[str], Optional[str]]]:
        """
        Comments on a suggestion, oldest first, with the author's display
        name and avatar when a profile exists.
        """
        result = await self._session.execute(
            select(Comment, Profile.display_name, Profile.avatar_url)
            .outerjoin(Profile, Profile.user_id == Comment.user_id)
            .where(Comment.suggested_id == suggested_id)
            .order_by(Comment.created_at.asc())
        )
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def add_report(
        self,
        user_id: uuid.UUID,
        suggested_id: uuid.UUID,
        reason: str,
    ) -> Report:
        report = Report(suggested_id=suggested_id, user_id=user_id, reason=reason)
        self._session.add(report)
        await self._session.flush()
        return report

    # ------------------------------------------------------------------
    # Follows & Profiles
    # ------------------------------------------------------------------

    async def follow(self, follower: uuid.UUID, followed: uuid.UUID) -> None:
        if follower == followed:
            raise ValueError("Users cannot follow themselves.")
        await self._session.execute(
            pg_insert(Follow)
            .values(follower=follower, followed=followed)
            .on_conflict_do_nothing(index_elements=[Follow.follower, Follow.followed])
        )

    async def unfollow(self, follower: uuid.UUID, followed: uuid.UUID) -> None:
        await self._session.execute(
            delete(Follow).where(
                Follow.follower == follower,
                Follow.followed == followed,
            )
        )

    async def get_profile(self, user_id: uuid.UUID) -> Optional[Profile]:
        return await self._session.get(Profile, user_id)

    async def follow_counts(self, user_id: uuid.UUID) -> Tuple[int, int]:
        """
        Returns
        -------
        Tuple[int, int]
            Follower count and following count.
        """
        followers = await self._session.execute(
            select(func.count()).select_from(Follow).where(Follow.followed == user_id)
        )
        following = await self._session.execute(
            select(func.count()).select_from(Follow).where(Follow.follower == user_id)
        )
        return followers.scalar() or 0, following.scalar() or 0

    async def is_following(self, follower: uuid.UUID, followed: uuid.UUID) -> bool:
        result = await self._session.execute(
            select(Follow.follower).where(
                Follow.follower == follower,
                Follow.followed == followed,
            )
        )
        return result.scalar_one_or_none() is not None

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    async def feed(
        self,
        language: str,
        offset: int,
        limit: int,
    ) -> List[Tuple[SuggestedStory, int, int]]:
        """
        Newest suggestions in ``language`` with reaction and comment counts.
        """
        reaction_count = (
            select(func.count(Reaction.id))
            .where(Reaction.suggested_id == SuggestedStory.id)
            .correlate(SuggestedStory)
            .scalar_subquery()
        )
        comment_count = (
            select(func.count(Comment.id))
            .where(Comment.suggested_id == SuggestedStory.id)
            .correlate(SuggestedStory)
            .scalar_subquery()
        )

        result = await self._session.execute(
            select(
                SuggestedStory,
                reaction_count.label("reaction_count"),
                comment_count.label("comment_count"),
            )
            .where(SuggestedStory.target_language == language)
            .order_by(SuggestedStory.created_at.desc(), SuggestedStory.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [(row[0], row[1] or 0, row[2] or 0) for row in result.all()]

    async def reactions_by_user(
        self,
        user_id: uuid.UUID,
        suggested_ids: Sequence[uuid.UUID],
    ) -> Dict[uuid.UUID, str]:
        """
        The user's reaction type per suggestion, for the given suggestions.
        """
        if not suggested_ids:
            return {}

        result = await self._session.execute(
            select(Reaction.suggested_id, Reaction.type)
            .where(
                Reaction.user_id == user_id,
                Reaction.suggested_id.in_(list(suggested_ids)),
            )
            .order_by(Reaction.created_at.asc())
        )
        return {suggested_id: reaction_type for suggested_id, reaction_type in result.all()}
