"""
Inbox Routes

The caller's received stories. Read flags only ever move from unread to
read.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .models import MarkReadResponse, ReceivedItem, ReceivedListResponse, SuggestionOut
from .dependencies import get_inbox
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..db.delivery_ledger import DeliveryLedger

router = APIRouter(prefix="/received", tags=["inbox"])


@router.get("", response_model=ReceivedListResponse)
async def list_received(
    user: Annotated[UserContext, Depends(get_current_user)],
    inbox: Annotated[DeliveryLedger, Depends(get_inbox)],
    limit: int = Query(50, ge=1, le=200),
):
    rows = await inbox.list_received(user.user_id, limit=limit)
    _, unread = await inbox.count_received(user.user_id)

    items = [
        ReceivedItem(
            id=delivery.id,
            submission_id=delivery.submission_id,
            source_story_id=delivery.source_story_id,
            suggested_story_id=delivery.suggested_story_id,
            is_read=delivery.is_read,
            created_at=delivery.created_at,
            suggestion=SuggestionOut.model_validate(suggestion),
        )
        for delivery, suggestion in rows
    ]
    return ReceivedListResponse(stories=items, unread=unread)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    user: Annotated[UserContext, Depends(get_current_user)],
    inbox: Annotated[DeliveryLedger, Depends(get_inbox)],
):
    updated = await inbox.mark_all_read(user.user_id)
    await inbox.commit()
    return MarkReadResponse(updated=updated)


@router.post("/{delivery_id}/read", response_model=MarkReadResponse)
async def mark_read(
    delivery_id: uuid.UUID,
    user: Annotated[UserContext, Depends(get_current_user)],
    inbox: Annotated[DeliveryLedger, Depends(get_inbox)],
):
    if not await inbox.mark_read(user.user_id, delivery_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Received story not found")
    await inbox.commit()
    return MarkReadResponse(updated=1)
