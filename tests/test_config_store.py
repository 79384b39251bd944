"""Tests for the cached tenant configuration."""

import asyncio
import json

import pytest

from app.core.exceptions import ConfigNotFoundError, InvalidAssignmentError
from app.db.session import async_session
from app.schemas.assignment import AssignmentConfigUpdate, ConfigAgentEntry
from app.services.assignment_router import AssignmentRouter
from app.services.config_store import ConfigStore, cache_key
from app.services.tenant_lock import TenantLockManager
from tests.helpers import TENANT, OTHER_TENANT, FakeRedis, agent_uuid

A, B = agent_uuid(1), agent_uuid(2)


class SlowFillRedis(FakeRedis):
    """Holds read-side cache fills (nx writes) until released."""

    def __init__(self):
        super().__init__()
        self.fill_started = asyncio.Event()
        self.release = asyncio.Event()

    async def set(self, key, value, ex=None, nx=False):
        if nx:
            self.fill_started.set()
            await self.release.wait()
        return await super().set(key, value, ex=ex, nx=nx)


class TestConfigStore:
    async def test_missing_config(self, fake_redis):
        async with async_session() as db:
            with pytest.raises(ConfigNotFoundError):
                await ConfigStore(fake_redis).get(db, TENANT)

    async def test_read_through_cache(self, fake_redis, configure, make_agents):
        await make_agents(2)
        await configure("round_robin", [A, B], weights={B: 3})
        store = ConfigStore(fake_redis)

        async with async_session() as db:
            first = await store.get(db, TENANT)
        assert cache_key(TENANT) in fake_redis.store

        async with async_session() as db:
            second = await store.get(db, TENANT)
        assert second == first
        assert [(e.agent_id, e.leads_per_round) for e in second.agents] == [(A, 1), (B, 3)]

    async def test_update_writes_through_cache(self, router, fake_redis, configure, make_agents):
        await make_agents(2)
        await configure("round_robin", [A, B])
        await router.get_config(TENANT)
        assert cache_key(TENANT) in fake_redis.store

        await configure("manual", [A])
        assert json.loads(fake_redis.store[cache_key(TENANT)])["method"] == "manual"
        config = await router.get_config(TENANT)
        assert config.method == "manual"
        assert [e.agent_id for e in config.agents] == [A]

    async def test_agent_order_and_flags_persist(self, router, make_agents):
        await make_agents(2)
        payload = AssignmentConfigUpdate(
            method="round_robin",
            agents=[ConfigAgentEntry(agent_id=B, leads_per_round=2), ConfigAgentEntry(agent_id=A, enabled=False)],
            sla_minutes=45,
            reassign_stages=["new", "contacted"],
        )
        saved = await router.update_config(TENANT, payload)

        assert [e.agent_id for e in saved.agents] == [B, A]
        assert [e.agent_id for e in saved.enabled_agents()] == [B]
        assert saved.sla_minutes == 45
        assert saved.reassign_stages == ["new", "contacted"]

    async def test_unknown_agent_rejected(self, router, make_agents):
        await make_agents(1)
        payload = AssignmentConfigUpdate(method="round_robin", agents=[ConfigAgentEntry(agent_id=B)])
        with pytest.raises(InvalidAssignmentError):
            await router.update_config(TENANT, payload)

    async def test_agent_of_other_tenant_rejected(self, router, make_agents):
        await make_agents(1, tenant_id=OTHER_TENANT)
        payload = AssignmentConfigUpdate(method="round_robin", agents=[ConfigAgentEntry(agent_id=A)])
        with pytest.raises(InvalidAssignmentError):
            await router.update_config(TENANT, payload)

    def test_duplicate_agents_rejected(self):
        with pytest.raises(ValueError):
            AssignmentConfigUpdate(agents=[ConfigAgentEntry(agent_id=A), ConfigAgentEntry(agent_id=A)])

    async def test_redis_outage_falls_back_to_database(self, router, fake_redis, configure, make_agents, make_lead):
        await make_agents(1)
        await configure("round_robin", [A])
        fake_redis.down = True

        result = await router.assign(await make_lead())
        assert result.owner_id == A

    async def test_late_cache_fill_does_not_hide_update(self, make_agents, make_lead):
        await make_agents(1)
        redis = SlowFillRedis()
        router = AssignmentRouter(async_session, ConfigStore(redis), TenantLockManager())
        await router.update_config(TENANT, AssignmentConfigUpdate(method="manual", agents=[ConfigAgentEntry(agent_id=A)]))
        redis.store.clear()

        reader = asyncio.create_task(router.get_config(TENANT))
        await redis.fill_started.wait()
        await router.update_config(
            TENANT, AssignmentConfigUpdate(method="round_robin", agents=[ConfigAgentEntry(agent_id=A)])
        )
        redis.release.set()
        assert (await reader).method == "manual"

        result = await router.assign(await make_lead())
        assert result.owner_kind == "agent"
        assert result.owner_id == A
