# models/agent.py
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, Index, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.db.base_class import Base

class Agent(Base):
    __tablename__ = "agents"

    agent_id = Column(Uuid, primary_key=True, default=uuid4)
    tenant_id = Column(Uuid, nullable=False)
    team_id = Column(Uuid, ForeignKey("teams.team_id", ondelete="SET NULL"), nullable=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)      # directory flag
    is_available = Column(Boolean, nullable=False, default=True)   # online / offline toggle
    capacity = Column(Integer, nullable=True)                      # NULL = unlimited
    active_lead_count = Column(Integer, nullable=False, default=0) # owned by LoadTracker
    last_assigned_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity >= 0", name="chk_agent_capacity"),
        CheckConstraint("active_lead_count >= 0", name="chk_agent_active_leads"),
        Index("idx_agent_tenant", "tenant_id"),
        Index("idx_agent_team", "team_id"),
    )

    # Relationships
    team = relationship("Team", back_populates="agents")


class Team(Base):
    __tablename__ = "teams"

    team_id = Column(Uuid, primary_key=True, default=uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(100), nullable=False)

    agents = relationship("Agent", back_populates="team")
