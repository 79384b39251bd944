# app/crud/assignment_config.py
from typing import List, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models import AssignmentConfig, AssignmentConfigAgent
from app.schemas.assignment import AssignmentConfigUpdate


# --- Fetch config ---
async def get_config(db: AsyncSession, tenant_id: UUID) -> Optional[AssignmentConfig]:
    result = await db.execute(select(AssignmentConfig).where(AssignmentConfig.tenant_id == tenant_id))
    return result.scalar_one_or_none()


async def list_configured_tenants(db: AsyncSession) -> List[UUID]:
    result = await db.execute(select(AssignmentConfig.tenant_id).order_by(AssignmentConfig.tenant_id))
    return list(result.scalars().all())


# --- Insert or replace config ---
async def upsert_config(db: AsyncSession, tenant_id: UUID, payload: AssignmentConfigUpdate) -> AssignmentConfig:
    config = await get_config(db, tenant_id)
    if config is None:
        config = AssignmentConfig(tenant_id=tenant_id)
        db.add(config)

    config.method = payload.method
    config.sla_minutes = payload.sla_minutes
    config.max_auto_reassignments = payload.max_auto_reassignments
    config.rule_fallback = payload.rule_fallback
    config.default_pool_id = payload.default_pool_id
    config.escalation_pool_id = payload.escalation_pool_id
    config.auto_reassign_enabled = payload.auto_reassign_enabled
    config.reassign_stages = list(payload.reassign_stages)

    # Update entries in place so rows keep their primary keys
    existing = {entry.agent_id: entry for entry in (config.agents or [])}
    wanted = []
    for position, item in enumerate(payload.agents):
        entry = existing.get(item.agent_id)
        if entry is None:
            entry = AssignmentConfigAgent(tenant_id=tenant_id, agent_id=item.agent_id)
        entry.position = position
        entry.enabled = item.enabled
        entry.leads_per_round = item.leads_per_round
        wanted.append(entry)
    config.agents = wanted

    await db.flush()
    return config
