from typing import Optional, Literal, Annotated
from pydantic import BaseModel, EmailStr, StringConstraints
from uuid import UUID
from datetime import datetime

from app.schemas.assignment import AssignmentResult


# --- Ingestion ---
class LeadCreateRequest(BaseModel):
    tenant_id: UUID
    first_name: str
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[Annotated[str, StringConstraints(min_length=7, max_length=20)]] = None
    source_type: Optional[str] = None
    campaign: Optional[str] = None
    budget: Optional[int] = None
    location: Optional[str] = None
    property_type: Optional[str] = None
    language_preference: Optional[str] = None


class LeadCaptureResponse(BaseModel):
    success: bool
    lead_id: UUID
    assignment: AssignmentResult


class LeadOut(BaseModel):
    lead_id: UUID
    tenant_id: UUID
    status: str
    pool_id: Optional[UUID] = None
    assigned_agent_id: Optional[UUID] = None
    assignment_state: str
    assigned_at: Optional[datetime] = None
    last_contacted_at: Optional[datetime] = None
    reassignment_count: int
    version: int

    model_config = {"from_attributes": True}


# --- Activity timeline ---
class ActivityRequest(BaseModel):
    type: Literal["call", "email", "whatsapp", "viewing", "meeting", "offer_made"]
    agent_id: Optional[UUID] = None
    notes: Optional[str] = None
    outcome: Optional[Literal["positive", "negative", "neutral"]] = None


class ActivityResponse(BaseModel):
    activity_id: UUID
    lead_id: UUID
    activity_type: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CloseLeadRequest(BaseModel):
    status: Literal["converted", "lost"]
