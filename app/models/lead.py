# models/lead.py
from sqlalchemy import Column, String, Integer, BigInteger, DateTime, ForeignKey, CheckConstraint, Index, Uuid
from uuid import uuid4
from app.db.base_class import Base


# Ownership states tracked by the assignment engine
UNASSIGNED = "unassigned"
POOLED = "pooled"
ASSIGNED = "assigned"
ESCALATED = "escalated"
CLOSED = "closed"

ASSIGNMENT_STATES = (UNASSIGNED, POOLED, ASSIGNED, ESCALATED, CLOSED)

# CRM stages; converted / lost are terminal
OPEN_STATUSES = ("new", "contacted", "qualified", "viewing_scheduled", "negotiation")
TERMINAL_STATUSES = ("converted", "lost")


class Lead(Base):
    __tablename__ = "leads"

    lead_id = Column(Uuid, primary_key=True, default=uuid4)
    tenant_id = Column(Uuid, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)

    # Source attributes used by routing rules
    source_type = Column(String(50), nullable=True)
    campaign = Column(String(150), nullable=True)
    budget = Column(BigInteger, nullable=True)
    location = Column(String(150), nullable=True)
    property_type = Column(String(50), nullable=True)
    language_preference = Column(String(20), nullable=True)
    status = Column(String(30), nullable=False, default="new")

    # Ownership (exactly one of pool_id / assigned_agent_id once routed)
    pool_id = Column(Uuid, ForeignKey("lead_pools.pool_id", ondelete="SET NULL"), nullable=True)
    assigned_agent_id = Column(Uuid, ForeignKey("agents.agent_id", ondelete="SET NULL"), nullable=True)
    assignment_state = Column(String(20), nullable=False, default=UNASSIGNED)
    assigned_at = Column(DateTime, nullable=True)
    last_contacted_at = Column(DateTime, nullable=True)
    reassignment_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(
            "status IN ('new','contacted','qualified','viewing_scheduled','negotiation','converted','lost')",
            name="chk_lead_status"
        ),
        CheckConstraint(
            "assignment_state IN ('unassigned','pooled','assigned','escalated','closed')",
            name="chk_lead_assignment_state"
        ),
        CheckConstraint("reassignment_count >= 0", name="chk_lead_reassignment_count"),
        Index("idx_lead_tenant_state", "tenant_id", "assignment_state"),
        Index("idx_lead_agent", "assigned_agent_id"),
        Index("idx_lead_pool", "pool_id"),
        Index("idx_lead_assigned_at", "assigned_at"),
    )
