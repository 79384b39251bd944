from typing import Optional
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class AgentCreate(BaseModel):
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    team_id: Optional[UUID] = None
    capacity: Optional[int] = Field(None, ge=0)


class AgentLoad(BaseModel):
    agent_id: UUID
    full_name: str
    team_id: Optional[UUID] = None
    is_active: bool
    is_available: bool
    capacity: Optional[int] = None
    active_lead_count: int
    has_capacity: bool
    last_assigned_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AvailabilityUpdate(BaseModel):
    is_available: bool
