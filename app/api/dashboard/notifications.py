"""
In-app Notification Endpoints.
"""

import uuid
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.models.notification import Notification
from app.models.user import User
from app.periods import isoformat
from app.services.notification_service import NotificationService

router = APIRouter()
logger = logging.getLogger(__name__)


class MarkReadRequest(BaseModel):
    notification_id: uuid.UUID


def notification_payload(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "body": notification.body,
        "link": notification.link,
        "metadata": notification.notification_metadata or {},
        "read_at": isoformat(notification.read_at),
        "created_at": isoformat(notification.created_at),
    }


@router.get("")
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    cursor: Optional[datetime] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Newest-first notifications; pass next_cursor back to page."""
    service = NotificationService(db)
    items, next_cursor = await service.list_for_user(
        user.id, limit=limit, unread_only=unread_only, cursor=cursor
    )
    return {
        "notifications": [notification_payload(n) for n in items],
        "unread_count": await service.unread_count(user.id),
        "next_cursor": isoformat(next_cursor),
    }


@router.post("/mark-read")
async def mark_notification_read(
    request: MarkReadRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService(db).mark_read(user.id, request.notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "notification": notification_payload(notification)}


@router.post("/mark-all-read")
async def mark_all_notifications_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService(db).mark_all_read(user.id)
    return {"success": True, "updated": count}
