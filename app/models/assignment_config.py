# models/assignment_config.py
from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, CheckConstraint, JSON, Uuid
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class AssignmentConfig(Base):
    __tablename__ = "assignment_config"

    tenant_id = Column(Uuid, primary_key=True)
    method = Column(String(20), nullable=False, default="manual")
    sla_minutes = Column(Integer, nullable=False, default=30)
    max_auto_reassignments = Column(Integer, nullable=False, default=2)
    rule_fallback = Column(String(20), nullable=False, default="pool")
    default_pool_id = Column(Uuid, ForeignKey("lead_pools.pool_id", ondelete="SET NULL"), nullable=True)
    escalation_pool_id = Column(Uuid, ForeignKey("lead_pools.pool_id", ondelete="SET NULL"), nullable=True)
    auto_reassign_enabled = Column(Boolean, nullable=False, default=True)
    reassign_stages = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("method IN ('manual','round_robin','rules')", name="chk_config_method"),
        CheckConstraint("rule_fallback IN ('round_robin','pool')", name="chk_config_fallback"),
        CheckConstraint("sla_minutes > 0", name="chk_config_sla"),
        CheckConstraint("max_auto_reassignments >= 0", name="chk_config_max_reassign"),
    )

    agents = relationship(
        "AssignmentConfigAgent",
        back_populates="config",
        cascade="all, delete-orphan",
        order_by="AssignmentConfigAgent.position",
        lazy="selectin",
    )


class AssignmentConfigAgent(Base):
    __tablename__ = "assignment_config_agents"

    tenant_id = Column(Uuid, ForeignKey("assignment_config.tenant_id", ondelete="CASCADE"), primary_key=True)
    agent_id = Column(Uuid, ForeignKey("agents.agent_id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)
    enabled = Column(Boolean, nullable=False, default=True)
    leads_per_round = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("leads_per_round >= 1", name="chk_config_agent_weight"),
    )

    config = relationship("AssignmentConfig", back_populates="agents")
