from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
from typing import List

from app.crud import assignment_rules as crud_rules
from app.crud.agent import get_agent
from app.crud.lead_pools import get_pool
from app.schemas.assignment import (
    AssignmentRuleCreate,
    AssignmentRuleOut,
    AssignmentLogFilters,
    AssignmentLogPage,
    AssignmentLogStats,
)
from app.services.audit_logger import AuditLogger


class AssignmentServices:
    """Rule administration and the assignment logs view."""

    @staticmethod
    async def create_rule(tenant_id: UUID, request: AssignmentRuleCreate, db: AsyncSession) -> AssignmentRuleOut:
        if await crud_rules.get_rule_by_priority(db, tenant_id, request.priority):
            raise ValueError(f"Priority {request.priority} is already used by another rule")

        if request.action_type == "assign_pool":
            if not await get_pool(db, tenant_id, request.action_target_id):
                raise LookupError(f"Pool {request.action_target_id} not found")
        elif request.action_type == "assign_agent":
            agent = await get_agent(db, request.action_target_id)
            if not agent or agent.tenant_id != tenant_id:
                raise LookupError(f"Agent {request.action_target_id} not found")

        try:
            rule = await crud_rules.create_rule(db, tenant_id, request)
            await db.commit()
        except IntegrityError as e:
            # a concurrent request took the same priority after our check
            await db.rollback()
            raise ValueError(f"Priority {request.priority} is already used by another rule") from e
        return AssignmentRuleOut.model_validate(rule)

    @staticmethod
    async def list_rules(tenant_id: UUID, db: AsyncSession) -> List[AssignmentRuleOut]:
        rules = await crud_rules.list_rules(db, tenant_id)
        return [AssignmentRuleOut.model_validate(r) for r in rules]

    @staticmethod
    async def delete_rule(tenant_id: UUID, rule_id: UUID, db: AsyncSession) -> None:
        if not await crud_rules.delete_rule(db, tenant_id, rule_id):
            raise LookupError(f"Rule {rule_id} not found")
        await db.commit()

    @staticmethod
    async def get_logs(tenant_id: UUID, filters: AssignmentLogFilters, db: AsyncSession) -> AssignmentLogPage:
        return await AuditLogger(db).query(tenant_id, filters)

    @staticmethod
    async def get_log_stats(tenant_id: UUID, db: AsyncSession) -> AssignmentLogStats:
        return await AuditLogger(db).stats(tenant_id)
