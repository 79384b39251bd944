"""Shared fixtures: a throwaway SQLite database and an in-process engine."""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="lead-engine-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["WATCHDOG_ENABLED"] = "false"
os.environ["DB_AUTO_CREATE"] = "false"
os.environ["DISTRIBUTED_LOCKS"] = "false"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

import pytest

import app.models  # noqa: F401
from app.db.base_class import Base
from app.db.session import engine, async_session
from app.crud.agent import create_agent, get_agent
from app.crud.lead import create_lead, get_lead_by_id
from app.crud.lead_pools import create_pool
from app.schemas.assignment import AssignmentConfigUpdate, ConfigAgentEntry
from app.services.assignment_router import AssignmentRouter
from app.services.config_store import ConfigStore
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.tenant_lock import TenantLockManager
from tests.helpers import TENANT, FakeRedis, RecordingChannel, agent_uuid


@pytest.fixture(autouse=True)
async def db_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
def session_factory():
    return async_session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def dispatcher(channel):
    return NotificationDispatcher([channel], max_retries=3, base_delay=0)


@pytest.fixture
def router(fake_redis, dispatcher):
    return AssignmentRouter(async_session, ConfigStore(fake_redis), TenantLockManager(), dispatcher)


@pytest.fixture
def make_agents():
    async def _make(count, tenant_id=TENANT, capacity=None, team_id=None, start=1):
        agents = []
        async with async_session() as db:
            for n in range(start, start + count):
                agent = await create_agent(
                    db, tenant_id, f"Agent {n}", capacity=capacity, team_id=team_id, agent_id=agent_uuid(n)
                )
                agents.append(agent.agent_id)
            await db.commit()
        return agents

    return _make


@pytest.fixture
def make_lead():
    async def _make(tenant_id=TENANT, **attrs):
        attrs.setdefault("first_name", "Lead")
        async with async_session() as db:
            lead = await create_lead(db, tenant_id, attrs)
            await db.commit()
            return lead.lead_id

    return _make


@pytest.fixture
def make_pool():
    async def _make(name, tenant_id=TENANT, conditions=None):
        async with async_session() as db:
            pool = await create_pool(db, tenant_id, name, conditions=conditions)
            await db.commit()
            return pool.pool_id

    return _make


@pytest.fixture
def configure(router):
    async def _configure(method, agents=(), weights=None, tenant_id=TENANT, **extra):
        weights = weights or {}
        payload = AssignmentConfigUpdate(
            method=method,
            agents=[ConfigAgentEntry(agent_id=a, leads_per_round=weights.get(a, 1)) for a in agents],
            **extra,
        )
        return await router.update_config(tenant_id, payload)

    return _configure


@pytest.fixture
def load_lead():
    async def _load(lead_id):
        async with async_session() as db:
            return await get_lead_by_id(db, lead_id)

    return _load


@pytest.fixture
def load_agent():
    async def _load(agent_id):
        async with async_session() as db:
            return await get_agent(db, agent_id)

    return _load


