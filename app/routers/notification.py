from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID
import logging
import traceback

from app.schemas.notification import NotificationOut
from app.db.session import get_db
from app.crud import notifications as crud_notifications

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("/{tenant_id}", response_model=List[NotificationOut])
async def list_notifications(
    tenant_id: UUID,
    unread_only: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await crud_notifications.list_notifications(db, tenant_id, unread_only, limit)
    except Exception as e:
        logger.error("Error in list_notifications: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    notification = await crud_notifications.mark_read(db, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return notification
