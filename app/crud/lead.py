# app/crud/lead.py
from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from uuid import UUID, uuid4
from datetime import datetime

from app.models import Lead
from app.models.lead import ASSIGNED, UNASSIGNED


# --- Insert Lead ---
async def create_lead(db: AsyncSession, tenant_id: UUID, lead_data: dict) -> Lead:
    new_lead = Lead(
        lead_id=uuid4(),
        tenant_id=tenant_id,
        **lead_data,
        status="new",
        assignment_state=UNASSIGNED,
        reassignment_count=0,
        version=1,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )
    db.add(new_lead)
    await db.flush()
    return new_lead


# --- Fetch Lead by ID ---
async def get_lead_by_id(db: AsyncSession, lead_id: UUID) -> Optional[Lead]:
    result = await db.execute(select(Lead).where(Lead.lead_id == lead_id))
    return result.scalar_one_or_none()


# --- Ownership write guarded by version (compare-and-swap) ---
async def compare_and_swap(db: AsyncSession, lead_id: UUID, expected_version: int, **values) -> bool:
    stmt = (
        update(Lead)
        .where(Lead.lead_id == lead_id, Lead.version == expected_version)
        .values(version=expected_version + 1, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session="fetch")
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


# --- Record contact on the lead itself ---
async def touch_last_contacted(db: AsyncSession, lead: Lead, contacted_at: datetime) -> Lead:
    lead.last_contacted_at = contacted_at
    if lead.status == "new":
        lead.status = "contacted"
    lead.updated_at = datetime.utcnow()
    return lead


# --- Watchdog scan ---
async def list_sla_candidates(
    db: AsyncSession,
    tenant_id: UUID,
    assigned_before: datetime,
    stages: Optional[Sequence[str]] = None,
) -> List[Lead]:
    stmt = select(Lead).where(
        Lead.tenant_id == tenant_id,
        Lead.assignment_state == ASSIGNED,
        Lead.assigned_at <= assigned_before,
    )
    if stages:
        stmt = stmt.where(Lead.status.in_(list(stages)))
    result = await db.execute(stmt.order_by(Lead.assigned_at, Lead.lead_id))
    return list(result.scalars().all())


# --- Leads captured but never routed ---
async def list_unrouted_leads(db: AsyncSession, tenant_id: UUID, created_before: datetime) -> List[UUID]:
    stmt = (
        select(Lead.lead_id)
        .where(
            Lead.tenant_id == tenant_id,
            Lead.assignment_state == UNASSIGNED,
            Lead.created_at <= created_before,
        )
        .order_by(Lead.created_at, Lead.lead_id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_tenants_with_unrouted_leads(db: AsyncSession, created_before: datetime) -> List[UUID]:
    stmt = (
        select(Lead.tenant_id)
        .where(Lead.assignment_state == UNASSIGNED, Lead.created_at <= created_before)
        .distinct()
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
