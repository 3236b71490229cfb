"""
Delivery Ledger

Records which suggested story each recipient received, and the shared
renditions those deliveries point to.

At most one delivery exists per ``(user_id, submission_id)``. The insert
relies on the unique constraint with ``ON CONFLICT DO NOTHING`` so that
concurrent or repeated pipeline runs converge on a single row.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert as pg_insert

from .models import (
    SuggestedStory,
    UserReceivedStory,
    GENERATION_MATCHED,
)

logger = logging.getLogger("stories.ledger")


class DeliveryLedger:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    # ------------------------------------------------------------------
    # Renditions
    # ------------------------------------------------------------------

    async def find_rendition(
        self,
        source_story_id: uuid.UUID,
        target_language: str,
    ) -> Optional[SuggestedStory]:
        """
        Earliest ``matched`` rendition of a story in a language, if any.
        """
        result = await self._session.execute(
            select(SuggestedStory)
            .where(
                SuggestedStory.source_story_id == source_story_id,
                SuggestedStory.target_language == target_language,
                SuggestedStory.generation_type == GENERATION_MATCHED,
            )
            .order_by(SuggestedStory.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_suggestion(
        self,
        source_story_id: uuid.UUID,
        target_language: str,
        rewritten_text: str,
        generation_type: str,
        similar_story_id: Optional[uuid.UUID] = None,
        similarity: Optional[float] = None,
        model_versions: Optional[dict] = None,
    ) -> SuggestedStory:
        suggestion = SuggestedStory(
            source_story_id=source_story_id,
            similar_story_id=similar_story_id,
            target_language=target_language,
            rewritten_text=rewritten_text,
            generation_type=generation_type,
            similarity=similarity,
            model_versions=model_versions,
        )
        self._session.add(suggestion)
        await self._session.flush()
        return suggestion

    async def create_suggestion_in_savepoint(self, **fields) -> SuggestedStory:
        """
        `create_suggestion` inside a SAVEPOINT. A failed insert is rolled
        back on its own and leaves the request transaction usable.
        """
        async with self._session.begin_nested():
            return await self.create_suggestion(**fields)

    async def get_suggestion(self, suggested_id: uuid.UUID) -> Optional[SuggestedStory]:
        return await self._session.get(SuggestedStory, suggested_id)

    # ------------------------------------------------------------------
    # Deliveries
    # ------------------------------------------------------------------

    async def get_delivery_for_submission(
        self,
        user_id: uuid.UUID,
        submission_id: uuid.UUID,
    ) -> Optional[UserReceivedStory]:
        result = await self._session.execute(
            select(UserReceivedStory).where(
                UserReceivedStory.user_id == user_id,
                UserReceivedStory.submission_id == submission_id,
            )
        )
        return result.scalar_one_or_none()

    async def record_delivery(
        self,
        user_id: uuid.UUID,
        submission_id: uuid.UUID,
        source_story_id: uuid.UUID,
        suggested_story_id: uuid.UUID,
    ) -> Tuple[UserReceivedStory, bool]:
        """
        Record a delivery unless one already exists for the submission.

        Returns
        -------
        Tuple[UserReceivedStory, bool]
            The delivery row, and whether this call created it.
        """
        stmt = pg_insert(UserReceivedStory).values(
            id=uuid.uuid4(),
            user_id=user_id,
            submission_id=submission_id,
            source_story_id=source_story_id,
            suggested_story_id=suggested_story_id,
            is_read=False,
        ).on_conflict_do_nothing(
            constraint="uq_received_submission",
        ).returning(UserReceivedStory.id)

        result = await self._session.execute(stmt)
        inserted_id = result.scalar_one_or_none()

        if inserted_id is not None:
            delivery = await self._session.get(UserReceivedStory, inserted_id)
            return delivery, True

        logger.info(
            "Delivery for submission %s already recorded, keeping existing row",
            submission_id,
        )
        existing = await self.get_delivery_for_submission(user_id, submission_id)
        return existing, False

    async def list_received(
        self,
        user_id: uuid.UUID,
        limit: int = 50,
    ) -> List[Tuple[UserReceivedStory, SuggestedStory]]:
        result = await self._session.execute(
            select(UserReceivedStory, SuggestedStory)
            .join(SuggestedStory, SuggestedStory.id == UserReceivedStory.suggested_story_id)
            .where(UserReceivedStory.user_id == user_id)
            .order_by(UserReceivedStory.created_at.desc())
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def mark_read(self, user_id: uuid.UUID, delivery_id: uuid.UUID) -> bool:
        """
        Mark one of the user's deliveries read. Returns False if the user
        has no such delivery.
        """
        result = await self._session.execute(
            update(UserReceivedStory)
            .where(
                UserReceivedStory.id == delivery_id,
                UserReceivedStory.user_id == user_id,
            )
            .values(is_read=True)
        )
        return result.rowcount > 0

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        result = await self._session.execute(
            update(UserReceivedStory)
            .where(
                UserReceivedStory.user_id == user_id,
                UserReceivedStory.is_read.is_(False),
            )
            .values(is_read=True)
        )
        return result.rowcount

    async def count_received(self, user_id: uuid.UUID) -> Tuple[int, int]:
        """
        Returns
        -------
        Tuple[int, int]
            Total deliveries and unread deliveries for the user.
        """
        result = await self._session.execute(
            select(
                func.count(UserReceivedStory.id),
                func.count(UserReceivedStory.id).filter(UserReceivedStory.is_read.is_(False)),
            ).where(UserReceivedStory.user_id == user_id)
        )
        total, unread = result.one()
        return total or 0, unread or 0
