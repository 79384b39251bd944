# crud/assignment_rules.py
from typing import List, Optional
from uuid import UUID, uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from app.models import AssignmentRule
from app.schemas.assignment import AssignmentRuleCreate


# Create a new routing rule
async def create_rule(db: AsyncSession, tenant_id: UUID, data: AssignmentRuleCreate) -> AssignmentRule:
    rule = AssignmentRule(
        rule_id=uuid4(),
        tenant_id=tenant_id,
        name=data.name,
        priority=data.priority,
        enabled=data.enabled,
        conditions=[c.model_dump(mode="json") for c in data.conditions],
        action_type=data.action_type,
        action_target_id=data.action_target_id,
    )
    db.add(rule)
    await db.flush()
    return rule


async def get_rule_by_priority(db: AsyncSession, tenant_id: UUID, priority: int) -> Optional[AssignmentRule]:
    result = await db.execute(
        select(AssignmentRule).where(AssignmentRule.tenant_id == tenant_id, AssignmentRule.priority == priority)
    )
    return result.scalar_one_or_none()


# List rules in evaluation order (ascending priority)
async def list_rules(db: AsyncSession, tenant_id: UUID, enabled_only: bool = False) -> List[AssignmentRule]:
    stmt = select(AssignmentRule).where(AssignmentRule.tenant_id == tenant_id)
    if enabled_only:
        stmt = stmt.where(AssignmentRule.enabled == True)
    result = await db.execute(stmt.order_by(AssignmentRule.priority.asc()))
    return list(result.scalars().all())


# Delete a rule
async def delete_rule(db: AsyncSession, tenant_id: UUID, rule_id: UUID) -> bool:
    stmt = delete(AssignmentRule).where(AssignmentRule.tenant_id == tenant_id, AssignmentRule.rule_id == rule_id)
    result = await db.execute(stmt)
    return result.rowcount > 0
