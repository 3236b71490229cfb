"""
Story Store

PostgreSQL-backed persistence for stories and their embeddings, and the
candidate query that feeds the similarity engine.
"""

from __future__ import annotations

import uuid
from typing import List, Optional, Sequence

from sqlalchemy import select, update, func, exists
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert as pg_insert

from .models import Story, StoryEmbedding, UserReceivedStory
from ..matching.similarity import Candidate


class StoryStatusConflict(RuntimeError):
    """Raised when a story's status has already left ``pending``."""


class StoryStore:
    """
    Story persistence bound to one async database session.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    async def create_story(
        self,
        user_id: uuid.UUID,
        text: str,
        language: str,
        consent: bool,
        status: str = "pending",
    ) -> Story:
        story = Story(
            user_id=user_id,
            text=text,
            language=language,
            consent=consent,
            status=status,
        )
        self._session.add(story)
        await self._session.flush()
        return story

    async def get_story(self, story_id: uuid.UUID) -> Optional[Story]:
        return await self._session.get(Story, story_id)

    async def list_by_status(self, status: str, limit: int = 50) -> List[Story]:
        result = await self._session.execute(
            select(Story)
            .where(Story.status == status)
            .order_by(Story.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def set_status_once(self, story_id: uuid.UUID, status: str) -> Story:
        """
        Move a pending story to ``status``.

        Returns
        -------
        Story
            The updated story.

        Raises
        ------
        LookupError
            If the story does not exist.
        StoryStatusConflict
            If the story was already approved or rejected.
        """
        result = await self._session.execute(
            update(Story)
            .where(Story.id == story_id, Story.status == "pending")
            .values(status=status)
            .returning(Story)
        )
        story = result.scalar_one_or_none()
        if story is not None:
            return story

        existing = await self.get_story(story_id)
        if existing is None:
            raise LookupError(f"Story {story_id} not found")
        raise StoryStatusConflict(
            f"Story {story_id} is already {existing.status}"
        )

    async def count_approved_by_user(self, user_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(Story)
            .where(Story.user_id == user_id, Story.status == "approved")
        )
        return result.scalar() or 0

    async def list_undelivered(self, limit: int = 100) -> List[Story]:
        """
        Approved stories whose submitter never received a story for them.
        """
        delivered = exists().where(
            UserReceivedStory.submission_id == Story.id,
            UserReceivedStory.user_id == Story.user_id,
        )
        result = await self._session.execute(
            select(Story)
            .where(Story.status == "approved", ~delivered)
            .order_by(Story.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def upsert_embedding(
        self,
        story_id: uuid.UUID,
        embedding: Sequence[float],
        embedding_model: str,
        archetype: str,
        emotion_tone: str,
    ) -> None:
        """
        Insert or replace the embedding row of a story.

        Runs in a SAVEPOINT so a failure here leaves the surrounding
        transaction usable.
        """
        vector = [float(x) for x in embedding]
        stmt = pg_insert(StoryEmbedding).values(
            story_id=story_id,
            embedding=vector,
            embedding_model=embedding_model,
            archetype=archetype,
            emotion_tone=emotion_tone,
        ).on_conflict_do_update(
            index_elements=[StoryEmbedding.story_id],
            set_={
                "embedding": vector,
                "embedding_model": embedding_model,
                "archetype": archetype,
                "emotion_tone": emotion_tone,
            },
        )

        async with self._session.begin_nested():
            await self._session.execute(stmt)

    async def list_candidates(
        self,
        embedding_model: str,
        exclude_story_id: uuid.UUID,
        exclude_user_id: Optional[uuid.UUID] = None,
    ) -> List[Candidate]:
        """
        Approved stories embedded by ``embedding_model``, oldest first.
        """
        stmt = (
            select(
                Story.id,
                Story.text,
                Story.language,
                StoryEmbedding.embedding,
                StoryEmbedding.archetype,
                StoryEmbedding.emotion_tone,
            )
            .join(StoryEmbedding, StoryEmbedding.story_id == Story.id)
            .where(
                Story.status == "approved",
                Story.id != exclude_story_id,
                StoryEmbedding.embedding_model == embedding_model,
            )
            .order_by(Story.created_at.asc(), Story.id.asc())
        )

        if exclude_user_id is not None:
            stmt = stmt.where(Story.user_id != exclude_user_id)

        result = await self._session.execute(stmt)

        return [
            Candidate(
                story_id=row.id,
                vector=row.embedding,
                archetype=row.archetype,
                emotion_tone=row.emotion_tone,
                text=row.text,
                language=row.language,
            )
            for row in result.all()
        ]
