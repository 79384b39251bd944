# app/services/pool_manager.py
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import RuleEvaluationError, InvalidAssignmentError
from app.crud import lead_pools as pool_crud
from app.crud.lead import get_lead_by_id
from app.models import Lead, LeadPool
from app.schemas.pool import LeadPoolCreate, LeadPoolOut
from app.services.rule_matcher import predicate_matches

logger = logging.getLogger(__name__)

DEFAULT_POOL_NAME = "Unassigned"


class PoolManager:
    """FIFO holding queues for leads without an agent owner."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Membership ---
    async def enqueue(self, lead: Lead, pool_id: UUID) -> None:
        # a lead belongs to at most one pool
        await pool_crud.remove_member(self.db, lead.lead_id)
        await pool_crud.add_member(self.db, pool_id, lead.lead_id)
        logger.debug("Lead %s enqueued in pool %s", lead.lead_id, pool_id)

    async def dequeue(self, pool_id: UUID) -> Optional[Lead]:
        """Pop the oldest member of ``pool_id``; ``None`` when the pool is empty."""
        member = await pool_crud.first_member(self.db, pool_id)
        if member is None:
            return None
        lead_id = member.lead_id
        await self.db.delete(member)
        await self.db.flush()
        return await get_lead_by_id(self.db, lead_id)

    async def peek(self, pool_id: UUID) -> Optional[UUID]:
        member = await pool_crud.first_member(self.db, pool_id)
        return member.lead_id if member else None

    async def remove(self, lead: Lead) -> bool:
        return await pool_crud.remove_member(self.db, lead.lead_id)

    # --- Pool selection ---
    async def resolve_pool(self, lead: Lead, default_pool_id: Optional[UUID] = None) -> UUID:
        """
        First active pool whose predicate holds for the lead, then the
        configured default pool, then the tenant's "Unassigned" pool.
        """
        for pool in await pool_crud.list_pools(self.db, lead.tenant_id, active_only=True):
            if not pool.conditions:
                continue
            try:
                if predicate_matches(lead, pool.conditions, pool.name):
                    return pool.pool_id
            except RuleEvaluationError as e:
                logger.warning("Skipping pool %s predicate: %s", pool.name, e)

        if default_pool_id is not None:
            pool = await pool_crud.get_pool(self.db, lead.tenant_id, default_pool_id)
            if pool is not None and pool.is_active:
                return pool.pool_id

        pool = await self.get_or_create_default_pool(lead.tenant_id)
        return pool.pool_id

    async def get_or_create_default_pool(self, tenant_id: UUID) -> LeadPool:
        pool = await pool_crud.get_default_pool(self.db, tenant_id)
        if pool is None:
            pool = await pool_crud.create_pool(
                self.db,
                tenant_id,
                DEFAULT_POOL_NAME,
                description="Leads waiting for an owner",
                is_default=True,
            )
            logger.info("Created default pool %s for tenant %s", pool.pool_id, tenant_id)
        return pool

    # --- Administration ---
    async def create_pool(self, tenant_id: UUID, data: LeadPoolCreate) -> LeadPool:
        conditions = None
        if data.conditions:
            conditions = [c.model_dump(mode="json") for c in data.conditions]
        return await pool_crud.create_pool(
            self.db,
            tenant_id,
            data.name,
            description=data.description,
            color=data.color,
            conditions=conditions,
        )

    async def get_pool(self, tenant_id: UUID, pool_id: UUID) -> LeadPool:
        pool = await pool_crud.get_pool(self.db, tenant_id, pool_id)
        if pool is None:
            raise LookupError(f"Pool {pool_id} not found")
        return pool

    async def list_pools(self, tenant_id: UUID) -> List[LeadPoolOut]:
        pools = await pool_crud.list_pools(self.db, tenant_id)
        counts = await pool_crud.count_members_by_pool(self.db, tenant_id)
        result = []
        for pool in pools:
            out = LeadPoolOut.model_validate(pool)
            out.lead_count = counts.get(pool.pool_id, 0)
            result.append(out)
        return result

    async def list_members(self, tenant_id: UUID, pool_id: UUID, limit: int = 100):
        await self.get_pool(tenant_id, pool_id)
        return await pool_crud.list_members(self.db, pool_id, limit)

    async def delete_pool(self, tenant_id: UUID, pool_id: UUID) -> None:
        pool = await self.get_pool(tenant_id, pool_id)
        if await pool_crud.count_members(self.db, pool.pool_id):
            raise InvalidAssignmentError(f"Pool {pool.name} still holds leads")
        await pool_crud.delete_pool(self.db, tenant_id, pool_id)
