from typing import List, Optional
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime

from app.schemas.assignment import RuleCondition


class LeadPoolCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    color: str = Field("#3B82F6", pattern=r"^#[0-9A-Fa-f]{6}$")
    conditions: Optional[List[RuleCondition]] = None


class LeadPoolOut(BaseModel):
    pool_id: UUID
    tenant_id: UUID
    name: str
    description: Optional[str] = None
    color: str
    is_active: bool
    is_default: bool
    lead_count: int = 0

    model_config = {"from_attributes": True}


class PoolMemberOut(BaseModel):
    lead_id: UUID
    enqueued_at: datetime

    model_config = {"from_attributes": True}
