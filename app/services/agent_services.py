from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
from typing import List
import logging

from app.crud import agent as crud_agent
from app.schemas.agent import AgentCreate, AgentLoad, AvailabilityUpdate
from app.services.assignment_router import AssignmentRouter
from app.services.load_tracker import LoadTracker

logger = logging.getLogger(__name__)


class AgentServices:
    """
        Agent directory and load view.

        Methods:
            create_agent(tenant_id, request, db): add an agent to the directory.
            get_agent_load(tenant_id, db): active leads against capacity per agent.
            set_availability(agent_id, request, db): online / offline toggle.
            reconcile_load(tenant_id, db, router): rebuild counters from the leads table.

        Availability only affects future decisions; leads already owned by
        an agent that goes offline stay with that agent.
    """

    @staticmethod
    async def create_agent(tenant_id: UUID, request: AgentCreate, db: AsyncSession) -> AgentLoad:
        agent = await crud_agent.create_agent(
            db,
            tenant_id,
            request.full_name,
            capacity=request.capacity,
            team_id=request.team_id,
            email=request.email,
            phone=request.phone,
        )
        await db.commit()
        return LoadTracker.to_load(agent)

    @staticmethod
    async def get_agent_load(tenant_id: UUID, db: AsyncSession) -> List[AgentLoad]:
        return await LoadTracker(db).agent_loads(tenant_id)

    @staticmethod
    async def set_availability(agent_id: UUID, request: AvailabilityUpdate, db: AsyncSession) -> AgentLoad:
        agent = await crud_agent.set_availability(db, agent_id, request.is_available)
        if not agent:
            raise LookupError(f"Agent {agent_id} not found")
        await db.commit()
        logger.info("Agent %s is now %s", agent_id, "available" if request.is_available else "unavailable")
        return LoadTracker.to_load(agent)

    @staticmethod
    async def reconcile_load(tenant_id: UUID, db: AsyncSession, router: AssignmentRouter) -> List[AgentLoad]:
        await router.reconcile_load(tenant_id)
        return await LoadTracker(db).agent_loads(tenant_id)
