"""Test doubles and constants shared across test modules."""

from datetime import datetime, timedelta
from uuid import UUID

from redis.exceptions import ConnectionError as RedisConnectionError

TENANT = UUID("00000000-0000-0000-0000-0000000000aa")
OTHER_TENANT = UUID("00000000-0000-0000-0000-0000000000bb")


def agent_uuid(n: int) -> UUID:
    """Agent ids that sort in creation order (A=1, B=2, ...)."""
    return UUID(int=n)


def minutes_ago(minutes: int) -> datetime:
    return datetime.utcnow() - timedelta(minutes=minutes)


class FakeRedis:
    """The slice of redis.asyncio.Redis used by the config cache."""

    def __init__(self):
        self.store = {}
        self.down = False
        self.gets = 0

    async def get(self, key):
        if self.down:
            raise RedisConnectionError("redis is down")
        self.gets += 1
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self.down:
            raise RedisConnectionError("redis is down")
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def ping(self):
        if self.down:
            raise RedisConnectionError("redis is down")
        return True

    async def delete(self, *keys):
        if self.down:
            raise RedisConnectionError("redis is down")
        return sum(1 for key in keys if self.store.pop(key, None) is not None)


class RecordingChannel:
    name = "recording"

    def __init__(self):
        self.events = []

    async def send(self, event):
        self.events.append(event)
