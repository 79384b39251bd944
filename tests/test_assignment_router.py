"""Tests for the assignment router: policies, fallbacks and commit semantics."""

import asyncio

import pytest
from sqlalchemy import select, func, update

import app.crud.agent as agent_crud
import app.crud.lead as lead_crud
from app.core.exceptions import (
    ConcurrentModificationError,
    InvalidAssignmentError,
    LeadNotFoundError,
    NoEligibleAgentError,
)
from app.crud.agent import set_availability
from app.crud.assignment_rules import create_rule
from app.crud.round_robin_state import get_or_create_state
from app.db.session import async_session
from app.models import Agent, AssignmentLog, Lead, Team
from app.schemas.assignment import AssignmentRuleCreate, RuleCondition
from app.services.load_tracker import LoadTracker
from tests.helpers import TENANT, OTHER_TENANT, agent_uuid

A, B, C = agent_uuid(1), agent_uuid(2), agent_uuid(3)


async def log_entries(lead_id=None):
    async with async_session() as db:
        stmt = select(AssignmentLog).order_by(AssignmentLog.created_at)
        if lead_id:
            stmt = stmt.where(AssignmentLog.lead_id == lead_id)
        return list((await db.execute(stmt)).scalars().all())


async def add_rule(priority, conditions, action_type, target, name=None):
    async with async_session() as db:
        await create_rule(db, TENANT, AssignmentRuleCreate(
            name=name or f"rule-{priority}",
            priority=priority,
            conditions=[RuleCondition(**c) for c in conditions],
            action_type=action_type,
            action_target_id=target,
        ))
        await db.commit()


async def assert_load_consistent(tenant_id=TENANT):
    async with async_session() as db:
        assert await LoadTracker(db).reconcile(tenant_id) == {}
        await db.rollback()


class TestConfigMissing:
    async def test_falls_back_to_pool(self, router, make_lead, load_lead):
        lead_id = await make_lead()
        result = await router.assign(lead_id)

        assert result.owner_kind == "pool"
        assert result.reason == "config_missing"

        lead = await load_lead(lead_id)
        assert lead.assignment_state == "pooled"
        assert lead.pool_id == result.owner_id
        assert lead.assigned_agent_id is None
        assert lead.version == 2

    async def test_unknown_lead(self, router):
        with pytest.raises(LeadNotFoundError):
            await router.assign(agent_uuid(999))


class TestManualPolicy:
    async def test_goes_to_default_pool(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await configure("manual", [A, B])
        result = await router.assign(await make_lead())
        assert result.owner_kind == "pool"
        assert result.reason == "manual_pool"
        assert result.decision_source == "manual"

    async def test_pool_predicate_picks_pool(self, router, configure, make_lead, make_pool):
        arabic = await make_pool("Arabic speakers", conditions=[
            {"field": "language_preference", "operator": "equals", "value": "arabic"},
        ])
        await configure("manual")
        result = await router.assign(await make_lead(language_preference="Arabic"))
        assert result.owner_id == arabic

    async def test_claim_moves_lead_to_agent(self, router, configure, make_agents, make_lead, load_lead, load_agent):
        await make_agents(1)
        await configure("manual", [A])
        lead_id = await make_lead()
        await router.assign(lead_id)

        result = await router.claim(lead_id, A)
        assert result.owner_kind == "agent"
        assert result.reason == "manual_claim"

        lead = await load_lead(lead_id)
        assert lead.assignment_state == "assigned"
        assert lead.pool_id is None
        assert (await load_agent(A)).active_lead_count == 1
        assert [e.reason for e in await log_entries(lead_id)] == ["manual_pool", "manual_claim"]
        await assert_load_consistent()

    async def test_claim_of_assigned_lead_rejected(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await configure("round_robin", [A, B])
        lead_id = await make_lead()
        await router.assign(lead_id)
        with pytest.raises(InvalidAssignmentError):
            await router.claim(lead_id, B)

    async def test_claim_by_full_agent_rejected(self, router, configure, make_agents, make_lead):
        await make_agents(1, capacity=0)
        await configure("manual", [A])
        lead_id = await make_lead()
        await router.assign(lead_id)
        with pytest.raises(NoEligibleAgentError):
            await router.claim(lead_id, A)


class TestRoundRobinPolicy:
    async def test_uniform_sequence(self, router, configure, make_agents, make_lead):
        await make_agents(3)
        await configure("round_robin", [C, A, B])
        owners = [(await router.assign(await make_lead())).owner_id for _ in range(3)]
        assert owners == [A, B, C]
        await assert_load_consistent()

    async def test_weighted_sequence(self, router, configure, make_agents, make_lead):
        await make_agents(3)
        await configure("round_robin", [A, B, C], weights={B: 2})
        owners = [(await router.assign(await make_lead())).owner_id for _ in range(4)]
        assert owners == [B, A, B, C]

    async def test_capacity_respected(self, router, configure, make_agents, make_lead):
        await make_agents(2, capacity=1)
        await configure("round_robin", [A, B])
        results = [await router.assign(await make_lead()) for _ in range(3)]

        assert [r.owner_id for r in results[:2]] == [A, B]
        assert results[2].owner_kind == "pool"
        assert results[2].reason == "no_agents_available"
        assert results[2].decision_source == "round_robin"

    async def test_unavailable_agent_skipped(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await configure("round_robin", [A, B])
        async with async_session() as db:
            await set_availability(db, A, False)
            await db.commit()

        result = await router.assign(await make_lead())
        assert result.owner_id == B

    async def test_no_enabled_agents(self, router, configure, make_lead):
        await configure("round_robin")
        result = await router.assign(await make_lead())
        assert result.owner_kind == "pool"
        assert result.reason == "no_agents_available"

    async def test_config_change_visible_to_next_decision(self, router, configure, make_agents, make_lead):
        await make_agents(3)
        await configure("round_robin", [A, B, C])
        assert (await router.assign(await make_lead())).owner_id == A

        await configure("round_robin", [C])
        assert (await router.assign(await make_lead())).owner_id == C

        async with async_session() as db:
            state = await get_or_create_state(db, TENANT)
            assert set(state.credits) == {str(C)}
            assert state.cursor == C

    async def test_tenants_rotate_independently(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await make_agents(2, tenant_id=OTHER_TENANT, start=11)
        await configure("round_robin", [A, B])
        await configure("round_robin", [agent_uuid(11), agent_uuid(12)], tenant_id=OTHER_TENANT)

        assert (await router.assign(await make_lead())).owner_id == A
        assert (await router.assign(await make_lead(tenant_id=OTHER_TENANT))).owner_id == agent_uuid(11)
        assert (await router.assign(await make_lead())).owner_id == B


class TestRulesPolicy:
    async def test_rule_precedence_over_rotation(self, router, configure, make_agents, make_lead, make_pool):
        await make_agents(2)
        luxury = await make_pool("Luxury")
        await configure("rules", [A, B], rule_fallback="round_robin")
        await add_rule(1, [{"field": "budget", "operator": "greater_than", "value": 1_000_000}], "assign_pool", luxury, name="luxury")

        # advance the rotation a few times first
        for _ in range(3):
            await router.assign(await make_lead(budget=100_000))

        result = await router.assign(await make_lead(budget=2_000_000))
        assert result.owner_kind == "pool"
        assert result.owner_id == luxury
        assert result.reason == "rule:luxury"
        assert result.decision_source == "rules"

    async def test_fallback_round_robin(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await configure("rules", [A, B], rule_fallback="round_robin")
        result = await router.assign(await make_lead())
        assert result.owner_id == A
        assert result.reason == "rule_fallback_round_robin"

    async def test_fallback_pool(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await configure("rules", [A, B], rule_fallback="pool")
        result = await router.assign(await make_lead())
        assert result.owner_kind == "pool"
        assert result.reason == "rule_fallback_pool"

    async def test_assign_agent_action(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await configure("rules", [A, B])
        await add_rule(1, [{"field": "campaign", "operator": "equals", "value": "vip"}], "assign_agent", B, name="vip")
        result = await router.assign(await make_lead(campaign="VIP"))
        assert result.owner_id == B
        assert result.reason == "rule:vip"

    async def test_assign_agent_at_capacity_goes_to_pool(self, router, configure, make_agents, make_lead):
        await make_agents(1, capacity=0)
        await configure("rules", [A])
        await add_rule(1, [], "assign_agent", A)
        result = await router.assign(await make_lead())
        assert result.owner_kind == "pool"
        assert result.reason == "no_agents_available"

    async def test_assign_team_picks_least_loaded(self, router, configure, make_agents, make_lead):
        team_id = agent_uuid(500)
        async with async_session() as db:
            db.add(Team(team_id=team_id, tenant_id=TENANT, name="Offplan"))
            await db.commit()
        await make_agents(2, team_id=team_id)
        await configure("rules", [A, B])
        await add_rule(1, [], "assign_team", team_id)

        owners = [(await router.assign(await make_lead())).owner_id for _ in range(4)]
        assert owners == [A, B, A, B]

    async def test_missing_pool_target(self, router, configure, make_lead):
        await configure("rules")
        await add_rule(1, [], "assign_pool", agent_uuid(404))
        result = await router.assign(await make_lead())
        assert result.owner_kind == "pool"
        assert result.reason == "rule_target_missing"


class TestIdempotency:
    async def test_assign_twice_gives_same_result(self, router, configure, make_agents, make_lead, load_lead):
        await make_agents(3)
        await configure("round_robin", [A, B, C])
        lead_id = await make_lead()

        first = await router.assign(lead_id)
        second = await router.assign(lead_id)

        assert first == second
        assert len(await log_entries(lead_id)) == 1
        assert (await load_lead(lead_id)).version == 2
        # no rotation credit consumed by the re-submission
        assert (await router.assign(await make_lead())).owner_id == B

    async def test_pooled_lead_resubmitted(self, router, make_lead):
        lead_id = await make_lead()
        first = await router.assign(lead_id)
        assert await router.assign(lead_id) == first


class TestReassign:
    async def test_excludes_current_agent(self, router, configure, make_agents, make_lead, load_agent):
        await make_agents(2)
        await configure("round_robin", [A, B])
        lead_id = await make_lead()
        await router.assign(lead_id)

        # the refill would hand A the tie, but A is excluded
        await router.assign(await make_lead())
        result = await router.reassign(lead_id, "agent_on_leave")

        assert result.owner_id == B
        assert result.reason == "agent_on_leave"
        assert (await load_agent(A)).active_lead_count == 0
        assert (await load_agent(B)).active_lead_count == 2
        await assert_load_consistent()

    async def test_to_named_agent(self, router, configure, make_agents, make_lead, channel):
        await make_agents(2)
        await configure("round_robin", [A, B])
        lead_id = await make_lead()
        await router.assign(lead_id)

        result = await router.reassign(lead_id, "manager_override", target_agent_id=B)
        await router.dispatcher.drain()

        assert result.owner_id == B
        assert result.decision_source == "manual"
        entries = await log_entries(lead_id)
        assert entries[-1].previous_owner_id == A
        assert entries[-1].new_owner_id == B
        assert channel.events[-1].notification_type == "reassignment"
        assert channel.events[-1].previous_agent_id == A

    async def test_to_current_owner_rejected(self, router, configure, make_agents, make_lead):
        await make_agents(1)
        await configure("round_robin", [A])
        lead_id = await make_lead()
        await router.assign(lead_id)
        with pytest.raises(InvalidAssignmentError):
            await router.reassign(lead_id, target_agent_id=A)

    async def test_only_agent_excluded_falls_back_to_pool(self, router, configure, make_agents, make_lead):
        await make_agents(1)
        await configure("round_robin", [A])
        lead_id = await make_lead()
        await router.assign(lead_id)

        result = await router.reassign(lead_id)
        assert result.owner_kind == "pool"
        assert result.reason == "no_agents_available"
        await assert_load_consistent()


class TestClose:
    async def test_close_releases_load(self, router, configure, make_agents, make_lead, load_lead, load_agent):
        await make_agents(1)
        await configure("round_robin", [A])
        lead_id = await make_lead()
        await router.assign(lead_id)

        lead = await router.close(lead_id, "converted")
        assert lead.assignment_state == "closed"
        assert lead.status == "converted"
        assert (await load_agent(A)).active_lead_count == 0
        assert len(await log_entries(lead_id)) == 1
        await assert_load_consistent()

    async def test_closed_lead_cannot_be_assigned(self, router, make_lead):
        lead_id = await make_lead()
        await router.close(lead_id, "lost")
        with pytest.raises(InvalidAssignmentError):
            await router.assign(lead_id)


class TestConcurrency:
    async def test_single_slot_goes_to_one_lead(self, router, configure, make_agents, make_lead):
        await make_agents(1, capacity=1)
        await configure("round_robin", [A])
        first, second = await make_lead(), await make_lead()

        results = await asyncio.gather(router.assign(first), router.assign(second))

        kinds = sorted(r.owner_kind for r in results)
        assert kinds == ["agent", "pool"]
        pooled = next(r for r in results if r.owner_kind == "pool")
        assert pooled.reason == "no_agents_available"
        await assert_load_consistent()

    async def test_many_concurrent_assignments(self, router, configure, make_agents, make_lead):
        await make_agents(3)
        await configure("round_robin", [A, B, C])
        leads = [await make_lead() for _ in range(9)]

        results = await asyncio.gather(*(router.assign(lead_id) for lead_id in leads))

        owners = [r.owner_id for r in results]
        assert {owner: owners.count(owner) for owner in (A, B, C)} == {A: 3, B: 3, C: 3}
        await assert_load_consistent()

    async def test_lost_race_is_retried(self, router, configure, make_agents, make_lead, monkeypatch):
        await make_agents(2)
        await configure("round_robin", [A, B])
        lead_id = await make_lead()

        real_cas = lead_crud.compare_and_swap
        calls = []

        async def flaky_cas(db, *args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return False
            return await real_cas(db, *args, **kwargs)

        monkeypatch.setattr(lead_crud, "compare_and_swap", flaky_cas)
        result = await router.assign(lead_id)

        assert len(calls) == 2
        assert result.owner_id == A
        assert len(await log_entries(lead_id)) == 1
        # the rolled back attempt did not consume A's credit
        assert (await router.assign(await make_lead())).owner_id == B

    async def test_retries_exhausted(self, router, configure, make_agents, make_lead, load_lead, monkeypatch):
        await make_agents(1)
        await configure("round_robin", [A])
        lead_id = await make_lead()

        async def always_lose(db, *args, **kwargs):
            return False

        monkeypatch.setattr(lead_crud, "compare_and_swap", always_lose)
        with pytest.raises(ConcurrentModificationError):
            await router.assign(lead_id)

        lead = await load_lead(lead_id)
        assert lead.assignment_state == "unassigned"
        assert await log_entries(lead_id) == []
        async with async_session() as db:
            count = await db.scalar(select(func.count(Lead.lead_id)).where(Lead.pool_id.is_not(None)))
            assert count == 0


class TestLoadTracker:
    async def test_active_count_follows_ownership(self, router, configure, make_agents, make_lead):
        await make_agents(2)
        await configure("round_robin", [A, B])
        lead_id = await make_lead()
        await router.assign(lead_id)

        async with async_session() as db:
            assert await LoadTracker(db).active_count(A) == 1
            assert await LoadTracker(db).active_count(B) == 0
            assert await LoadTracker(db).active_count(C) == 0

        await router.close(lead_id, "lost")
        async with async_session() as db:
            assert await LoadTracker(db).active_count(A) == 0

    async def test_capacity_check(self, make_agents, load_agent):
        await make_agents(1, capacity=1)
        agent = await load_agent(A)
        assert LoadTracker.has_capacity(agent)

        agent.active_lead_count = 1
        assert not LoadTracker.has_capacity(agent)

        agent.capacity = None
        assert LoadTracker.has_capacity(agent)

    async def test_reconcile_fixes_drift(self, router, configure, make_agents, make_lead, load_agent):
        await make_agents(2)
        await configure("round_robin", [A, B])
        await router.assign(await make_lead())
        async with async_session() as db:
            await db.execute(update(Agent).values(active_lead_count=5))
            await db.commit()

        assert await router.reconcile_load(TENANT) == {A: 1, B: 0}
        assert (await load_agent(A)).active_lead_count == 1
        assert (await load_agent(B)).active_lead_count == 0

    async def test_assignment_during_reconcile_is_counted(
        self, router, configure, make_agents, make_lead, load_agent, monkeypatch
    ):
        await make_agents(1)
        await configure("round_robin", [A])
        lead_id = await make_lead()

        counted = asyncio.Event()
        release = asyncio.Event()
        real_count = agent_crud.count_assigned_leads

        async def slow_count(db, tenant_id):
            result = await real_count(db, tenant_id)
            counted.set()
            await release.wait()
            return result

        monkeypatch.setattr(agent_crud, "count_assigned_leads", slow_count)
        reconcile = asyncio.create_task(router.reconcile_load(TENANT))
        await counted.wait()

        assign = asyncio.create_task(router.assign(lead_id))
        await asyncio.sleep(0.05)
        assert not assign.done()

        release.set()
        await reconcile
        assert (await assign).owner_id == A
        assert (await load_agent(A)).active_lead_count == 1
        await assert_load_consistent()
