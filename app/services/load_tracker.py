# app/services/load_tracker.py
import logging
from datetime import datetime
from typing import Dict, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import agent as agent_crud
from app.models import Agent
from app.schemas.agent import AgentLoad

logger = logging.getLogger(__name__)


class LoadTracker:
    """
    Owns ``Agent.active_lead_count``.

    Counters move only through ``increment``/``decrement``, which the
    assignment router calls in the same transaction as the ownership write.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def active_count(self, agent_id: UUID) -> int:
        load = await agent_crud.get_load(self.db, agent_id)
        return load[0] if load else 0

    async def increment(self, agent_id: UUID) -> None:
        await agent_crud.adjust_active_count(self.db, agent_id, 1, last_assigned_at=datetime.utcnow())

    async def decrement(self, agent_id: UUID) -> None:
        await agent_crud.adjust_active_count(self.db, agent_id, -1)

    @staticmethod
    def has_capacity(agent: Agent) -> bool:
        return agent.capacity is None or agent.active_lead_count < agent.capacity

    async def agent_loads(self, tenant_id: UUID) -> List[AgentLoad]:
        agents = await agent_crud.list_agents(self.db, tenant_id)
        return [self.to_load(agent) for agent in agents]

    async def reconcile(self, tenant_id: UUID) -> Dict[UUID, int]:
        """
        Recompute every counter of the tenant from the leads table.
        Returns the agents whose counter was off, with the corrected value.
        Call it under the tenant lock (see ``AssignmentRouter.reconcile_load``).
        """
        actual = await agent_crud.count_assigned_leads(self.db, tenant_id)
        corrected = {}
        for agent in await agent_crud.list_agents(self.db, tenant_id):
            expected = actual.get(agent.agent_id, 0)
            if agent.active_lead_count != expected:
                logger.warning(
                    "Agent %s load drifted: stored=%s actual=%s",
                    agent.agent_id, agent.active_lead_count, expected,
                )
                agent.active_lead_count = expected
                corrected[agent.agent_id] = expected
        await self.db.flush()
        return corrected

    @staticmethod
    def to_load(agent: Agent) -> AgentLoad:
        return AgentLoad(
            agent_id=agent.agent_id,
            full_name=agent.full_name,
            team_id=agent.team_id,
            is_active=agent.is_active,
            is_available=agent.is_available,
            capacity=agent.capacity,
            active_lead_count=agent.active_lead_count,
            has_capacity=LoadTracker.has_capacity(agent),
            last_assigned_at=agent.last_assigned_at,
        )
