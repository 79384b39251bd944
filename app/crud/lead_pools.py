# crud/lead_pools.py
from typing import List, Optional
from uuid import UUID, uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func

from app.models import LeadPool, LeadPoolMember


# --- Pools ---
async def create_pool(
    db: AsyncSession,
    tenant_id: UUID,
    name: str,
    description: Optional[str] = None,
    color: str = "#3B82F6",
    conditions: Optional[list] = None,
    is_default: bool = False,
) -> LeadPool:
    pool = LeadPool(
        pool_id=uuid4(),
        tenant_id=tenant_id,
        name=name,
        description=description,
        color=color,
        conditions=conditions,
        is_active=True,
        is_default=is_default,
    )
    db.add(pool)
    await db.flush()
    return pool


async def get_pool(db: AsyncSession, tenant_id: UUID, pool_id: UUID) -> Optional[LeadPool]:
    result = await db.execute(
        select(LeadPool).where(LeadPool.tenant_id == tenant_id, LeadPool.pool_id == pool_id)
    )
    return result.scalar_one_or_none()


async def get_default_pool(db: AsyncSession, tenant_id: UUID) -> Optional[LeadPool]:
    result = await db.execute(
        select(LeadPool)
        .where(LeadPool.tenant_id == tenant_id, LeadPool.is_default == True)
        .order_by(LeadPool.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_pools(db: AsyncSession, tenant_id: UUID, active_only: bool = False) -> List[LeadPool]:
    stmt = select(LeadPool).where(LeadPool.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(LeadPool.is_active == True)
    result = await db.execute(stmt.order_by(LeadPool.created_at, LeadPool.name))
    return list(result.scalars().all())


async def count_members_by_pool(db: AsyncSession, tenant_id: UUID) -> dict:
    stmt = (
        select(LeadPoolMember.pool_id, func.count(LeadPoolMember.member_id))
        .join(LeadPool, LeadPool.pool_id == LeadPoolMember.pool_id)
        .where(LeadPool.tenant_id == tenant_id)
        .group_by(LeadPoolMember.pool_id)
    )
    result = await db.execute(stmt)
    return {pool_id: count for pool_id, count in result.all()}


async def delete_pool(db: AsyncSession, tenant_id: UUID, pool_id: UUID) -> bool:
    stmt = delete(LeadPool).where(LeadPool.tenant_id == tenant_id, LeadPool.pool_id == pool_id)
    result = await db.execute(stmt)
    return result.rowcount > 0


# --- Membership (FIFO) ---
async def add_member(db: AsyncSession, pool_id: UUID, lead_id: UUID) -> LeadPoolMember:
    member = LeadPoolMember(pool_id=pool_id, lead_id=lead_id)
    db.add(member)
    await db.flush()
    return member


async def remove_member(db: AsyncSession, lead_id: UUID) -> bool:
    result = await db.execute(delete(LeadPoolMember).where(LeadPoolMember.lead_id == lead_id))
    return result.rowcount > 0


async def first_member(db: AsyncSession, pool_id: UUID) -> Optional[LeadPoolMember]:
    result = await db.execute(
        select(LeadPoolMember)
        .where(LeadPoolMember.pool_id == pool_id)
        .order_by(LeadPoolMember.member_id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_members(db: AsyncSession, pool_id: UUID, limit: int = 100) -> List[LeadPoolMember]:
    result = await db.execute(
        select(LeadPoolMember)
        .where(LeadPoolMember.pool_id == pool_id)
        .order_by(LeadPoolMember.member_id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_members(db: AsyncSession, pool_id: UUID) -> int:
    result = await db.execute(
        select(func.count(LeadPoolMember.member_id)).where(LeadPoolMember.pool_id == pool_id)
    )
    return result.scalar() or 0
