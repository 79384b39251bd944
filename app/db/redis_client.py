# app/db/redis_client.py
import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import REDIS_URL

# Shared by the config cache and the distributed tenant locks; connects on first command
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


async def get_redis():
    """FastAPI dependency for the shared client."""
    yield redis_client


async def redis_status(client) -> str:
    try:
        await client.ping()
    except RedisError as e:
        return f"unavailable: {e}"
    return "ok"


async def close_redis() -> None:
    await redis_client.aclose()
