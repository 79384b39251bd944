# crud/lead_activities.py
from typing import List, Optional
from uuid import UUID, uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, exists
from datetime import datetime

from app.models.lead_activities import LeadActivity, CONTACT_ACTIVITY_TYPES


# Create a new activity
async def create_activity(
    db: AsyncSession,
    lead_id: UUID,
    activity_type: str,
    agent_id: Optional[UUID] = None,
    notes: Optional[str] = None,
    outcome: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> LeadActivity:
    activity = LeadActivity(
        activity_id=uuid4(),
        lead_id=lead_id,
        agent_id=agent_id,
        activity_type=activity_type,
        notes=notes,
        outcome=outcome,
        created_at=created_at or datetime.utcnow(),
    )
    db.add(activity)
    await db.flush()
    return activity


# List all activities for a lead
async def get_activities_by_lead(db: AsyncSession, lead_id: UUID) -> List[LeadActivity]:
    result = await db.execute(
        select(LeadActivity).where(LeadActivity.lead_id == lead_id).order_by(LeadActivity.created_at.desc())
    )
    return list(result.scalars().all())


# Activity timeline check used by the SLA watchdog
async def has_contact_activity_since(db: AsyncSession, lead_id: UUID, since: datetime) -> bool:
    stmt = select(
        exists().where(
            LeadActivity.lead_id == lead_id,
            LeadActivity.activity_type.in_(CONTACT_ACTIVITY_TYPES),
            LeadActivity.created_at >= since,
        )
    )
    result = await db.execute(stmt)
    return bool(result.scalar())
