# crud/notifications.py
from typing import List, Optional
from uuid import UUID, uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import datetime

from app.models import AssignmentNotification


async def create_notification(
    db: AsyncSession,
    tenant_id: UUID,
    lead_id: UUID,
    notification_type: str,
    title: str,
    message: Optional[str] = None,
    recipient_agent_id: Optional[UUID] = None,
) -> AssignmentNotification:
    notification = AssignmentNotification(
        notification_id=uuid4(),
        tenant_id=tenant_id,
        lead_id=lead_id,
        recipient_agent_id=recipient_agent_id,
        notification_type=notification_type,
        title=title,
        message=message,
        is_read=False,
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_notifications(
    db: AsyncSession,
    tenant_id: UUID,
    unread_only: bool = False,
    limit: int = 50,
) -> List[AssignmentNotification]:
    stmt = select(AssignmentNotification).where(AssignmentNotification.tenant_id == tenant_id)
    if unread_only:
        stmt = stmt.where(AssignmentNotification.is_read == False)
    result = await db.execute(stmt.order_by(AssignmentNotification.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, notification_id: UUID) -> Optional[AssignmentNotification]:
    result = await db.execute(
        select(AssignmentNotification).where(AssignmentNotification.notification_id == notification_id)
    )
    notification = result.scalar_one_or_none()
    if notification and not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        await db.flush()
    return notification
