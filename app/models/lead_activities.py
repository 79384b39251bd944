# models/lead_activities.py
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index, CheckConstraint, Uuid
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base

CONTACT_ACTIVITY_TYPES = ("call", "email", "whatsapp", "viewing", "meeting", "offer_made")


class LeadActivity(Base):
    __tablename__ = "lead_activities"

    activity_id = Column(Uuid, primary_key=True, default=uuid4)
    lead_id = Column(Uuid, ForeignKey("leads.lead_id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(Uuid, ForeignKey("agents.agent_id", ondelete="SET NULL"), nullable=True)
    activity_type = Column(String(30), nullable=False)
    notes = Column(Text, nullable=True)
    outcome = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('call','email','whatsapp','viewing','meeting','offer_made')",
            name="chk_activity_type"
        ),
        CheckConstraint(
            "outcome IS NULL OR outcome IN ('positive','negative','neutral')",
            name="chk_activity_outcome"
        ),
        Index("idx_activity_lead", "lead_id"),
        Index("idx_activity_time", "created_at"),
    )
