"""Tests for the append-only assignment log."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from app.db.session import async_session
from app.models import AssignmentLog
from app.schemas.assignment import AssignmentLogFilters
from app.services.audit_logger import AuditLogger
from tests.helpers import TENANT, OTHER_TENANT, agent_uuid

A, B = agent_uuid(1), agent_uuid(2)
POOL = agent_uuid(100)


async def record(lead_id, previous, new, source="manual", reason="manual_claim", tenant_id=TENANT):
    async with async_session() as db:
        entry = await AuditLogger(db).record(tenant_id, lead_id, previous, new, source, reason)
        await db.commit()
        return entry.log_id


class TestImmutability:
    async def test_update_refused(self):
        log_id = await record(agent_uuid(900), None, ("agent", A))
        async with async_session() as db:
            entry = await db.get(AssignmentLog, log_id)
            entry.reason = "rewritten"
            with pytest.raises(PermissionError):
                await db.flush()

    async def test_delete_refused(self):
        log_id = await record(agent_uuid(900), None, ("agent", A))
        async with async_session() as db:
            entry = await db.get(AssignmentLog, log_id)
            await db.delete(entry)
            with pytest.raises(PermissionError):
                await db.flush()

        async with async_session() as db:
            assert await db.get(AssignmentLog, log_id) is not None


class TestQuery:
    async def test_paging_newest_first(self):
        for n in range(5):
            await record(agent_uuid(900 + n), None, ("pool", POOL), reason=f"r{n}")

        async with async_session() as db:
            logger = AuditLogger(db)
            first = await logger.query(TENANT, AssignmentLogFilters(page=1, page_size=2))
            last = await logger.query(TENANT, AssignmentLogFilters(page=3, page_size=2))

        assert first.total == 5
        assert [e.reason for e in first.items] == ["r4", "r3"]
        assert [e.reason for e in last.items] == ["r0"]

    async def test_filters(self):
        lead_id = agent_uuid(900)
        await record(lead_id, None, ("agent", A), source="round_robin", reason="round_robin")
        await record(lead_id, ("agent", A), ("agent", B), source="watchdog", reason="sla_breach")
        await record(agent_uuid(901), None, ("pool", POOL), source="rules", reason="rule_fallback_pool")
        await record(agent_uuid(902), None, ("agent", A), tenant_id=OTHER_TENANT)

        async with async_session() as db:
            logger = AuditLogger(db)
            by_lead = await logger.query(TENANT, AssignmentLogFilters(lead_id=lead_id))
            by_agent = await logger.query(TENANT, AssignmentLogFilters(agent_id=A))
            by_source = await logger.query(TENANT, AssignmentLogFilters(decision_source="watchdog"))
            future = await logger.query(
                TENANT, AssignmentLogFilters(start_date=datetime.utcnow() + timedelta(hours=1))
            )

        assert by_lead.total == 2
        # previous and new owner both count for the agent filter
        assert by_agent.total == 2
        assert [e.reason for e in by_source.items] == ["sla_breach"]
        assert future.total == 0

    async def test_stats(self):
        lead_id = agent_uuid(900)
        await record(lead_id, None, ("agent", A), source="round_robin", reason="round_robin")
        await record(lead_id, ("agent", A), ("pool", POOL), source="watchdog", reason="escalated")
        await record(agent_uuid(901), None, ("pool", POOL), source="manual", reason="manual_pool")

        async with async_session() as db:
            stats = await AuditLogger(db).stats(TENANT)

        assert stats.total == 3
        assert stats.by_source == {"round_robin": 1, "watchdog": 1, "manual": 1}
        assert stats.to_agent == 1
        assert stats.to_pool == 2
        assert stats.reassigned == 1
        assert stats.escalated == 1

    async def test_router_writes_one_entry_per_decision(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await configure("round_robin", [A, B])
        lead_id = await make_lead()
        await router.assign(lead_id)
        await router.reassign(lead_id)

        async with async_session() as db:
            rows = (await db.execute(select(AssignmentLog).where(AssignmentLog.lead_id == lead_id))).scalars().all()
        assert len(rows) == 2
