# crud/assignment_log.py
from typing import List, Optional, Tuple
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.models import AssignmentLog


# Append a log entry (there is intentionally no update/delete here)
async def append_entry(db: AsyncSession, entry: AssignmentLog) -> AssignmentLog:
    db.add(entry)
    await db.flush()
    return entry


async def latest_for_lead(db: AsyncSession, lead_id: UUID) -> Optional[AssignmentLog]:
    result = await db.execute(
        select(AssignmentLog)
        .where(AssignmentLog.lead_id == lead_id)
        .order_by(AssignmentLog.created_at.desc(), AssignmentLog.log_id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def query_entries(
    db: AsyncSession,
    tenant_id: UUID,
    filters: list,
    offset: int,
    limit: int,
) -> Tuple[List[AssignmentLog], int]:
    base = select(AssignmentLog).where(AssignmentLog.tenant_id == tenant_id, *filters)

    total = await db.execute(select(func.count()).select_from(base.subquery()))
    rows = await db.execute(
        base.order_by(AssignmentLog.created_at.desc(), AssignmentLog.log_id).offset(offset).limit(limit)
    )
    return list(rows.scalars().all()), total.scalar() or 0


async def count_by_source(db: AsyncSession, tenant_id: UUID) -> dict:
    result = await db.execute(
        select(AssignmentLog.decision_source, func.count(AssignmentLog.log_id))
        .where(AssignmentLog.tenant_id == tenant_id)
        .group_by(AssignmentLog.decision_source)
    )
    return {source: count for source, count in result.all()}


async def count_where(db: AsyncSession, tenant_id: UUID, *conditions) -> int:
    result = await db.execute(
        select(func.count(AssignmentLog.log_id)).where(AssignmentLog.tenant_id == tenant_id, *conditions)
    )
    return result.scalar() or 0
