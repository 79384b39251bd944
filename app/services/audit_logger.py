# app/services/audit_logger.py
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import assignment_log as log_crud
from app.models import AssignmentLog
from app.schemas.assignment import (
    AssignmentLogEntry,
    AssignmentLogFilters,
    AssignmentLogPage,
    AssignmentLogStats,
)

logger = logging.getLogger(__name__)


class AuditLogger:
    """Append-only trail of ownership decisions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        tenant_id: UUID,
        lead_id: UUID,
        previous_owner: Optional[tuple],
        new_owner: tuple,
        decision_source: str,
        reason: str,
        rule_id: Optional[UUID] = None,
    ) -> AssignmentLog:
        prev_kind, prev_id = previous_owner if previous_owner else (None, None)
        entry = AssignmentLog(
            tenant_id=tenant_id,
            lead_id=lead_id,
            previous_owner_kind=prev_kind,
            previous_owner_id=prev_id,
            new_owner_kind=new_owner[0],
            new_owner_id=new_owner[1],
            decision_source=decision_source,
            reason=reason,
            rule_id=rule_id,
            created_at=datetime.utcnow(),
        )
        await log_crud.append_entry(self.db, entry)
        logger.info(
            "Lead %s -> %s %s (%s: %s)",
            lead_id, new_owner[0], new_owner[1], decision_source, reason,
            extra={"tenant_id": str(tenant_id), "lead_id": str(lead_id)},
        )
        return entry

    async def latest_for_lead(self, lead_id: UUID) -> Optional[AssignmentLog]:
        return await log_crud.latest_for_lead(self.db, lead_id)

    async def query(self, tenant_id: UUID, filters: AssignmentLogFilters) -> AssignmentLogPage:
        conditions = []
        if filters.lead_id:
            conditions.append(AssignmentLog.lead_id == filters.lead_id)
        if filters.agent_id:
            conditions.append(
                or_(
                    (AssignmentLog.new_owner_kind == "agent") & (AssignmentLog.new_owner_id == filters.agent_id),
                    (AssignmentLog.previous_owner_kind == "agent") & (AssignmentLog.previous_owner_id == filters.agent_id),
                )
            )
        if filters.decision_source:
            conditions.append(AssignmentLog.decision_source == filters.decision_source)
        if filters.start_date:
            conditions.append(AssignmentLog.created_at >= filters.start_date)
        if filters.end_date:
            conditions.append(AssignmentLog.created_at <= filters.end_date)

        offset = (filters.page - 1) * filters.page_size
        rows, total = await log_crud.query_entries(self.db, tenant_id, conditions, offset, filters.page_size)
        return AssignmentLogPage(
            items=[AssignmentLogEntry.model_validate(row) for row in rows],
            total=total,
            page=filters.page,
            page_size=filters.page_size,
        )

    async def stats(self, tenant_id: UUID) -> AssignmentLogStats:
        by_source = await log_crud.count_by_source(self.db, tenant_id)
        return AssignmentLogStats(
            total=sum(by_source.values()),
            by_source=by_source,
            to_agent=await log_crud.count_where(self.db, tenant_id, AssignmentLog.new_owner_kind == "agent"),
            to_pool=await log_crud.count_where(self.db, tenant_id, AssignmentLog.new_owner_kind == "pool"),
            reassigned=await log_crud.count_where(self.db, tenant_id, AssignmentLog.previous_owner_id.is_not(None)),
            escalated=await log_crud.count_where(self.db, tenant_id, AssignmentLog.reason == "escalated"),
        )
