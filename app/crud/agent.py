# app/crud/agent.py
from typing import Iterable, List, Optional, Tuple
from uuid import UUID, uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, case

from app.models import Agent, Lead
from app.models.lead import ASSIGNED


# --- Create Agent ---
async def create_agent(
    db: AsyncSession,
    tenant_id: UUID,
    full_name: str,
    capacity: Optional[int] = None,
    team_id: Optional[UUID] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    agent_id: Optional[UUID] = None,
) -> Agent:
    agent = Agent(
        agent_id=agent_id or uuid4(),
        tenant_id=tenant_id,
        full_name=full_name,
        capacity=capacity,
        team_id=team_id,
        email=email,
        phone=phone,
        is_active=True,
        is_available=True,
        active_lead_count=0,
    )
    db.add(agent)
    await db.flush()
    return agent


# --- Fetch Agent by ID ---
async def get_agent(db: AsyncSession, agent_id: UUID) -> Optional[Agent]:
    result = await db.execute(select(Agent).where(Agent.agent_id == agent_id))
    return result.scalar_one_or_none()


# --- Agent directory: enabled agents of a tenant ---
async def list_active_agents(
    db: AsyncSession,
    tenant_id: UUID,
    agent_ids: Optional[Iterable[UUID]] = None,
) -> List[Agent]:
    stmt = select(Agent).where(Agent.tenant_id == tenant_id, Agent.is_active == True)
    if agent_ids is not None:
        stmt = stmt.where(Agent.agent_id.in_(list(agent_ids)))
    result = await db.execute(stmt.order_by(Agent.agent_id).execution_options(populate_existing=True))
    return list(result.scalars().all())


async def list_agents(db: AsyncSession, tenant_id: UUID) -> List[Agent]:
    result = await db.execute(
        select(Agent)
        .where(Agent.tenant_id == tenant_id)
        .order_by(Agent.full_name, Agent.agent_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_team_members(db: AsyncSession, tenant_id: UUID, team_id: UUID) -> List[Agent]:
    result = await db.execute(
        select(Agent).where(
            Agent.tenant_id == tenant_id,
            Agent.team_id == team_id,
            Agent.is_active == True,
        ).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# --- Availability toggle ---
async def set_availability(db: AsyncSession, agent_id: UUID, is_available: bool) -> Optional[Agent]:
    agent = await get_agent(db, agent_id)
    if not agent:
        return None
    agent.is_available = is_available
    await db.flush()
    return agent


# --- Load counters ---
async def adjust_active_count(db: AsyncSession, agent_id: UUID, delta: int, **extra) -> None:
    new_count = Agent.active_lead_count + delta
    stmt = (
        update(Agent)
        .where(Agent.agent_id == agent_id)
        .values(active_lead_count=case((new_count < 0, 0), else_=new_count), **extra)
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)


async def get_load(db: AsyncSession, agent_id: UUID) -> Optional[Tuple[int, Optional[int]]]:
    """ (active_lead_count, capacity) read straight from the table """
    result = await db.execute(
        select(Agent.active_lead_count, Agent.capacity).where(Agent.agent_id == agent_id)
    )
    row = result.first()
    return (row[0], row[1]) if row else None


async def count_assigned_leads(db: AsyncSession, tenant_id: UUID) -> dict:
    """ Active lead count per agent, derived from the leads table """
    stmt = (
        select(Lead.assigned_agent_id, func.count(Lead.lead_id))
        .where(Lead.tenant_id == tenant_id, Lead.assignment_state == ASSIGNED)
        .group_by(Lead.assigned_agent_id)
    )
    result = await db.execute(stmt)
    return {agent_id: count for agent_id, count in result.all()}
