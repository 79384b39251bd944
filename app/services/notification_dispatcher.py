# app/services/notification_dispatcher.py
import asyncio
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Optional, Protocol, Set
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import NOTIFICATION_MAX_RETRIES, NOTIFICATION_BASE_DELAY, NOTIFICATION_TIMEOUT
from app.core.exceptions import NotificationDeliveryError
from app.crud.notifications import create_notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnerChangedEvent:
    tenant_id: UUID
    lead_id: UUID
    notification_type: str                  # assignment | reassignment | escalation
    owner_kind: str
    owner_id: UUID
    reason: str
    recipient_agent_id: Optional[UUID] = None  # None = tenant manager
    previous_agent_id: Optional[UUID] = None
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def title(self) -> str:
        if self.notification_type == "escalation":
            return "Lead escalated"
        if self.notification_type == "reassignment":
            return "Lead reassigned to you"
        return "New lead assigned to you"

    def to_payload(self) -> dict:
        payload = {k: str(v) if v is not None else None for k, v in asdict(self).items()}
        payload["title"] = self.title
        return payload


class NotificationChannel(Protocol):
    name: str

    async def send(self, event: OwnerChangedEvent) -> None: ...


class InAppChannel:
    """Stores the event as a row of ``assignment_notifications``."""

    name = "in_app"

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def send(self, event: OwnerChangedEvent) -> None:
        try:
            async with self.session_factory() as db:
                await create_notification(
                    db,
                    tenant_id=event.tenant_id,
                    lead_id=event.lead_id,
                    notification_type=event.notification_type,
                    title=event.title,
                    message=f"Reason: {event.reason}",
                    recipient_agent_id=event.recipient_agent_id,
                )
                await db.commit()
        except SQLAlchemyError as e:
            raise NotificationDeliveryError(self.name, str(e)) from e


class WebhookChannel:
    """POSTs the event as JSON to an external endpoint."""

    name = "webhook"

    def __init__(self, url: str, timeout: float = NOTIFICATION_TIMEOUT, transport=None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def send(self, event: OwnerChangedEvent) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=event.to_payload())
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(self.name, str(e)) from e


class NotificationDispatcher:
    """
    Fire-and-forget fan-out of owner-changed events.

    ``dispatch`` returns immediately; every channel is delivered in its own
    task and retried with exponential backoff. Delivery failures are logged
    and never reach the caller.
    """

    def __init__(
        self,
        channels: Optional[List[NotificationChannel]] = None,
        max_retries: int = NOTIFICATION_MAX_RETRIES,
        base_delay: float = NOTIFICATION_BASE_DELAY,
    ):
        self.channels = list(channels or [])
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, event: OwnerChangedEvent) -> None:
        for channel in self.channels:
            task = asyncio.create_task(self._deliver(channel, event))
            self._pending.add(task)
            task.add_done_callback(self._on_done)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, channel: NotificationChannel, event: OwnerChangedEvent) -> bool:
        for attempt in range(1, self.max_retries + 1):
            try:
                await channel.send(event)
                logger.debug("Delivered %s for lead %s via %s", event.notification_type, event.lead_id, channel.name)
                return True
            except NotificationDeliveryError as e:
                if attempt == self.max_retries:
                    logger.error(
                        "Giving up on %s notification for lead %s after %s attempts: %s",
                        channel.name, event.lead_id, attempt, e,
                    )
                    return False
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Notification via %s failed (attempt %s/%s), retrying in %.1fs: %s",
                    channel.name, attempt, self.max_retries, delay, e,
                )
                await asyncio.sleep(delay)
        return False

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Notification task crashed: %s", exc, exc_info=exc)
