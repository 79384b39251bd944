# app/services/tenant_lock.py
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

from app.core.config import LOCK_TIMEOUT, LOCK_BLOCKING_TIMEOUT

logger = logging.getLogger(__name__)


class TenantLockManager:
    """
    Serializes routing decisions of a tenant.

    Inside one process an asyncio.Lock per tenant is enough. With several
    API workers a Redis lock is taken on top of it (``distributed=True``),
    so round-robin credits and agent capacity are never consumed twice.
    """

    def __init__(
        self,
        redis=None,
        distributed: bool = False,
        timeout: float = LOCK_TIMEOUT,
        blocking_timeout: float = LOCK_BLOCKING_TIMEOUT,
    ):
        self.redis = redis
        self.distributed = distributed and redis is not None
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self._locks = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, tenant_id: UUID) -> AsyncIterator[None]:
        async with self._locks[str(tenant_id)]:
            if not self.distributed:
                yield
                return

            lock = self.redis.lock(
                f"assignment_lock:{tenant_id}",
                timeout=self.timeout,
                blocking_timeout=self.blocking_timeout,
            )
            async with lock:
                logger.debug("Acquired distributed lock for tenant %s", tenant_id)
                yield
