# app/services/config_store.py
import json
import logging
from typing import Optional
from uuid import UUID

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import CONFIG_CACHE_TTL
from app.core.exceptions import ConfigNotFoundError, InvalidAssignmentError
from app.crud import assignment_config as config_crud
from app.crud.agent import list_active_agents
from app.crud.round_robin_state import prune_state
from app.schemas.assignment import AssignmentConfigData, AssignmentConfigUpdate

logger = logging.getLogger(__name__)


def cache_key(tenant_id: UUID) -> str:
    return f"assignment_config:{tenant_id}"


class ConfigStore:
    """
    Read-mostly tenant configuration with a Redis read-through cache.

    Redis outages degrade to direct database reads; they never block a
    routing decision.
    """

    def __init__(self, redis=None, ttl: int = CONFIG_CACHE_TTL):
        self.redis = redis
        self.ttl = ttl

    async def get(self, db: AsyncSession, tenant_id: UUID) -> AssignmentConfigData:
        cached = await self._cache_get(tenant_id)
        if cached is not None:
            return cached

        config = await config_crud.get_config(db, tenant_id)
        if config is None:
            raise ConfigNotFoundError(tenant_id)

        data = AssignmentConfigData.model_validate(config)
        # only fill an empty key; an update may have written a newer copy since our read
        await self._cache_set(data, only_if_missing=True)
        return data

    async def update(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        payload: AssignmentConfigUpdate,
    ) -> AssignmentConfigData:
        """
        Persist a new config and write it through to the cache after commit.
        Callers hold the tenant lock so no decision runs in between.
        """
        agent_ids = [entry.agent_id for entry in payload.agents]
        if agent_ids:
            known = {a.agent_id for a in await list_active_agents(db, tenant_id, agent_ids)}
            missing = [str(aid) for aid in agent_ids if aid not in known]
            if missing:
                raise InvalidAssignmentError(f"Unknown or disabled agents: {', '.join(missing)}")

        config = await config_crud.upsert_config(db, tenant_id, payload)
        await prune_state(db, tenant_id, [e.agent_id for e in payload.agents if e.enabled])
        await db.commit()

        data = AssignmentConfigData.model_validate(config)
        if not await self._cache_set(data):
            await self.invalidate(tenant_id)

        logger.info("Assignment config updated for tenant %s (method=%s)", tenant_id, payload.method)
        return data

    async def invalidate(self, tenant_id: UUID) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.delete(cache_key(tenant_id))
        except RedisError as e:
            logger.error("Failed to invalidate config cache for %s: %s", tenant_id, e)

    async def _cache_get(self, tenant_id: UUID) -> Optional[AssignmentConfigData]:
        if self.redis is None:
            return None
        try:
            raw = await self.redis.get(cache_key(tenant_id))
        except RedisError as e:
            logger.warning("Config cache read failed for %s: %s", tenant_id, e)
            return None
        if not raw:
            return None
        return AssignmentConfigData.model_validate(json.loads(raw))

    async def _cache_set(self, data: AssignmentConfigData, only_if_missing: bool = False) -> bool:
        if self.redis is None:
            return True
        try:
            await self.redis.set(cache_key(data.tenant_id), data.model_dump_json(), ex=self.ttl, nx=only_if_missing)
        except RedisError as e:
            logger.warning("Config cache write failed for %s: %s", data.tenant_id, e)
            return False
        return True
