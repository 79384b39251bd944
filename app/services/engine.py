# app/services/engine.py
"""
Process-wide wiring of the assignment engine.

Routers and the scheduler share one lock manager and one notification
dispatcher so every decision of a tenant is serialized in this process.
"""
from app.core.config import DISTRIBUTED_LOCKS, NOTIFICATION_WEBHOOK_URL
from app.db.redis_client import redis_client
from app.db.session import async_session
from app.services.assignment_router import AssignmentRouter
from app.services.config_store import ConfigStore
from app.services.notification_dispatcher import InAppChannel, NotificationDispatcher, WebhookChannel
from app.services.tenant_lock import TenantLockManager
from app.services.watchdog import ReassignmentWatchdog


def build_channels(session_factory=async_session) -> list:
    channels = [InAppChannel(session_factory)]
    if NOTIFICATION_WEBHOOK_URL:
        channels.append(WebhookChannel(NOTIFICATION_WEBHOOK_URL))
    return channels


tenant_locks = TenantLockManager(redis_client, distributed=DISTRIBUTED_LOCKS)
notification_dispatcher = NotificationDispatcher(build_channels())


def build_router(redis=redis_client, session_factory=async_session) -> AssignmentRouter:
    return AssignmentRouter(
        session_factory,
        ConfigStore(redis),
        tenant_locks,
        notification_dispatcher,
    )


assignment_router = build_router()
watchdog = ReassignmentWatchdog(assignment_router, async_session)


# --- FastAPI dependencies ---
def get_assignment_router() -> AssignmentRouter:
    return assignment_router


def get_watchdog() -> ReassignmentWatchdog:
    return watchdog
