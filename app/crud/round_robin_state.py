# crud/round_robin_state.py
from typing import Iterable
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models import RoundRobinState


async def get_or_create_state(db: AsyncSession, tenant_id: UUID) -> RoundRobinState:
    result = await db.execute(select(RoundRobinState).where(RoundRobinState.tenant_id == tenant_id))
    state = result.scalar_one_or_none()
    if state is None:
        state = RoundRobinState(tenant_id=tenant_id, cursor=None, credits={}, last_reset_at=None)
        db.add(state)
        await db.flush()
    return state


# Drop credits and cursor of agents that left the enabled list
async def prune_state(db: AsyncSession, tenant_id: UUID, enabled_agent_ids: Iterable[UUID]) -> None:
    result = await db.execute(select(RoundRobinState).where(RoundRobinState.tenant_id == tenant_id))
    state = result.scalar_one_or_none()
    if state is None:
        return
    keep = {str(agent_id) for agent_id in enabled_agent_ids}
    state.credits = {aid: credit for aid, credit in (state.credits or {}).items() if aid in keep}
    if state.cursor is not None and str(state.cursor) not in keep:
        state.cursor = None
    await db.flush()
