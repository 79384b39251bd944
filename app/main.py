from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI

from app.core.config import DB_AUTO_CREATE, WATCHDOG_ENABLED, WATCHDOG_INTERVAL_SECONDS
from app.core.logging_config import setup_logging
from app.db.redis_client import close_redis, get_redis, redis_status
from app.db.session import init_models
from app.routers import lead, assignment, pool, agent, notification
from app.scheduler.scheduler import create_scheduler, start_scheduler, stop_scheduler, get_scheduler_status
from app.services.engine import notification_dispatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if DB_AUTO_CREATE:
        await init_models()

    if WATCHDOG_ENABLED:
        create_scheduler(WATCHDOG_INTERVAL_SECONDS)
        start_scheduler()
    else:
        logger.info("Reassignment watchdog disabled")

    yield

    stop_scheduler()
    await notification_dispatcher.drain()
    await close_redis()


app = FastAPI(
    title="Lead Distribution Engine",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Register Routers ---
app.include_router(lead.router)          # /api/v1/leads/*
app.include_router(assignment.router)    # /api/v1/assignment/*
app.include_router(pool.router)          # /api/v1/pools/*
app.include_router(agent.router)         # /api/v1/agents/*
app.include_router(notification.router)  # /api/v1/notifications/*


# --- Root health check ---
@app.get("/")
async def root(redis=Depends(get_redis)):
    return {
        "message": "Lead Distribution Engine is running",
        "redis": await redis_status(redis),
        "scheduler": get_scheduler_status(),
    }
