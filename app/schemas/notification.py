from typing import Optional
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime


class NotificationOut(BaseModel):
    notification_id: UUID
    lead_id: UUID
    recipient_agent_id: Optional[UUID] = None
    notification_type: str
    title: str
    message: Optional[str] = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}
